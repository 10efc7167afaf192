from .conversation import Conversation
from .customer import Customer
from .deal import Deal
from .lead import Lead
from .saved_search import SavedSearch
from .search_event import SearchEvent
from .segment import CustomerSegment
from .tags import CustomerTag, DealTag, LeadTag, TicketTag
from .ticket import Ticket

__all__ = [
    "Lead",
    "LeadTag",
    "Deal",
    "DealTag",
    "Customer",
    "CustomerTag",
    "CustomerSegment",
    "Ticket",
    "TicketTag",
    "Conversation",
    "SavedSearch",
    "SearchEvent",
]
