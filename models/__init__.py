from .user import User
from .holding import Holding
from .investment_strategy import InvestmentStrategy
from .ai_analysis import AIAnalysis, AIRecommendation
from .user_rate_limit import UserRateLimit
