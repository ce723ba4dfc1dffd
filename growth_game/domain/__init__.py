from growth_game.domain.followup_operations import followup_ops
from growth_game.domain.history_operations import history_ops
from growth_game.domain.overlay_operations import overlay_ops
from growth_game.domain.profile_operations import profile_ops
from growth_game.domain.ranking_operations import ranking_ops
from growth_game.domain.referral_operations import referral_ops
from growth_game.domain.settings_operations import settings_ops
from growth_game.domain.team_operations import team_ops

__all__ = [
    "profile_ops",
    "referral_ops",
    "history_ops",
    "ranking_ops",
    "settings_ops",
    "overlay_ops",
    "followup_ops",
    "team_ops",
]
