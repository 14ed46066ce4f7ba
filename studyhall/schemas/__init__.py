from studyhall.schemas.user import UserCreate, UserResponse, UserLogin, Token
from studyhall.schemas.study_hall import StudyHallCreate, StudyHallResponse, StudyHallListResponse
from studyhall.schemas.booking import BookingCreate, BookingResponse, PriceQuote
from studyhall.schemas.payment import TransactionResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "StudyHallCreate", "StudyHallResponse", "StudyHallListResponse",
    "BookingCreate", "BookingResponse", "PriceQuote",
    "TransactionResponse",
]
