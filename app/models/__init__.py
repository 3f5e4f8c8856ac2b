from app.models.attendance import GuestEventAttendance
from app.models.event import Event
from app.models.guest import Guest
from app.models.item import ItemEventQuantity, WeddingItem
from app.models.meal_option import MealOption
from app.models.vendor import Vendor, VendorInvoice, VendorPayment
from app.models.wedding import Wedding

__all__ = [
    "Wedding",
    "Guest",
    "Event",
    "GuestEventAttendance",
    "MealOption",
    "Vendor",
    "VendorPayment",
    "VendorInvoice",
    "WeddingItem",
    "ItemEventQuantity",
]
