from app.schemas.base import DocumentModel


class MenuItem(DocumentModel):
    name: str = ""
    price: int = 0
    seller_id: str = ""
    vendor: str = ""
    eta_minutes: int = 0
    rating: float = 0.0
    category: str = ""
    available: bool = True

    def vendor_or_dash(self) -> str:
        return self.vendor.strip() or "-"

    def seller_or_dash(self) -> str:
        return self.seller_id.strip() or "-"

    def eta_text(self) -> str:
        return f"ETA {self.eta_minutes} min" if self.eta_minutes > 0 else "ETA -"

    def rating_text(self) -> str:
        return f"★ {self.rating:.1f}" if self.rating > 0 else "★ -"

    def price_text(self) -> str:
        return "Rp " + f"{self.price:,}".replace(",", ".")

    def subtitle(self) -> str:
        return " • ".join([self.price_text(), self.vendor_or_dash(), self.eta_text(), self.rating_text()])
