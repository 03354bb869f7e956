from .user import User
from .session import UserSession
from .failed_login import FailedLogin
from .position import Position
from .stock_price import StockPrice
from .stock_symbol import StockSymbol
from .watchlist import WatchlistItem
from .activity_log import ActivityLog
from .contact_message import ContactMessage
