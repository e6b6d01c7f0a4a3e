from aihub.models.user import User
from aihub.models.chat import Chat, Message, ROLE_ASSISTANT, ROLE_USER
from aihub.models.credit_transaction import CreditTransaction, TransactionType
from aihub.models.otp_code import OtpCode
from aihub.models.media_job import JobStatus, MediaJob, MediaKind

__all__ = [
    "User",
    "Chat",
    "Message",
    "ROLE_USER",
    "ROLE_ASSISTANT",
    "CreditTransaction",
    "TransactionType",
    "OtpCode",
    "MediaJob",
    "MediaKind",
    "JobStatus",
]
