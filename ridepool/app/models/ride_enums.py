"""
Carpool-related enumerations.
"""

import enum


class Gender(str, enum.Enum):
    """Account gender, used by offer/request preference filters."""
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNSPECIFIED = "UNSPECIFIED"


class RidePreference(str, enum.Enum):
    """Who a driver or passenger is willing to ride with."""
    ANY = "ANY"
    MALE = "MALE"
    FEMALE = "FEMALE"


class TripDirection(str, enum.Enum):
    """Direction of a single route leg."""
    GOING = "GOING"  # Origin -> event destination
    RETURN = "RETURN"  # Event destination -> origin


class TripType(str, enum.Enum):
    """Which legs a passenger needs."""
    GOING = "GOING"
    RETURN = "RETURN"
    BOTH = "BOTH"


class ListingStatus(str, enum.Enum):
    """Offer / request status enumeration."""
    ACTIVE = "ACTIVE"
    MATCHED = "MATCHED"  # Requests only: a join request on an offer was confirmed
    CANCELLED = "CANCELLED"


class JoinRequestStatus(str, enum.Enum):
    """Join request lifecycle."""
    PENDING = "PENDING"  # Awaiting the other party's decision
    CONFIRMED = "CONFIRMED"  # Seats held on the offer
    REJECTED = "REJECTED"  # Declined by the driver, or by the passenger for an invitation
    CANCELLED = "CANCELLED"  # Withdrawn by requester or removed by driver


NON_TERMINAL_JOIN_STATUSES = (JoinRequestStatus.PENDING, JoinRequestStatus.CONFIRMED)


class JoinInitiator(str, enum.Enum):
    """Who opened a join request: the passenger asking, or the driver inviting."""
    PASSENGER = "PASSENGER"
    DRIVER = "DRIVER"


class PaymentMode(str, enum.Enum):
    """Whether passengers are asked to contribute to the ride."""
    NOT_REQUIRED = "NOT_REQUIRED"
    OPTIONAL = "OPTIONAL"
    OBLIGATORY = "OBLIGATORY"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BIT = "BIT"
    PAYBOX = "PAYBOX"
    OTHER = "OTHER"


class EventStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
