from app.models.user import User
from app.models.category import Category
from app.models.listing import Listing, ListingImage
from app.models.discovery import ListingFavorite
from app.models.message import Message

__all__ = [
    "User",
    "Category",
    "Listing",
    "ListingImage",
    "ListingFavorite",
    "Message",
]
