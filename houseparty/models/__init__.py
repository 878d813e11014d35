from houseparty.models.base import Base  # noqa: F401
from houseparty.models.device_token import DeviceToken  # noqa: F401
from houseparty.models.friendship import Friendship  # noqa: F401
from houseparty.models.invitation import Invitation, InvitationKind, InvitationStatus  # noqa: F401
from houseparty.models.otp import OneTimeCode, OtpPurpose  # noqa: F401
from houseparty.models.party import Party, PartyParticipant  # noqa: F401
from houseparty.models.user import DataUsage, Quality, User  # noqa: F401
