"""Models package."""

from .user import User
from .profile import Profile
from .listing import Listing
from .content_item import ContentItem
from .blog_post import BlogPost
from .credit_transaction import CreditTransaction
from .transaction import Transaction
from .payout_request import PayoutRequest
from .listing_boost import ListingBoost
from .forum import ForumCategory, ForumThread, ForumPost
from .contest import Contest, ContestEntry
from .wishlist_item import WishlistItem
from .subscription import Subscription
from .admin_audit_log import AdminAuditLog
