from growth_game.models.crm_setting import CrmSetting, SettingKey
from growth_game.models.lead_history import HistoryEventCreate, LeadEventType, LeadHistory
from growth_game.models.organization import Organization
from growth_game.models.profile import AppRole, Profile, UserRole
from growth_game.models.referral import (
    ClientCreate,
    ClientFlagUpdate,
    ContactTagUpdate,
    ConversionCreate,
    FollowUpUpdate,
    LeadCreate,
    LeadViaLeadCreate,
    NotesUpdate,
    QualificationUpdate,
    Referral,
    ReferralStatus,
    ReferringLeadUpdate,
    TagsUpdate,
)

__all__ = [
    # Organization
    "Organization",
    # Profile
    "AppRole",
    "Profile",
    "UserRole",
    # Referral
    "Referral",
    "ReferralStatus",
    "LeadCreate",
    "LeadViaLeadCreate",
    "ClientCreate",
    "ConversionCreate",
    "ContactTagUpdate",
    "TagsUpdate",
    "NotesUpdate",
    "FollowUpUpdate",
    "QualificationUpdate",
    "ClientFlagUpdate",
    "ReferringLeadUpdate",
    # History
    "LeadHistory",
    "LeadEventType",
    "HistoryEventCreate",
    # Settings
    "CrmSetting",
    "SettingKey",
]
