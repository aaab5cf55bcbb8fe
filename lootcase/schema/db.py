from dataclasses import dataclass
from typing import Literal, Optional, TypeAlias


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    icon_url: Optional[str]
    color: Optional[str]


@dataclass(frozen=True)
class BadgeReward:
    badge_id: str
    badge: Optional[Badge] = None

    @property
    def item_type(self) -> Literal["badge"]:
        return "badge"


@dataclass(frozen=True)
class CoinReward:
    amount: int

    @property
    def item_type(self) -> Literal["coins"]:
        return "coins"


Reward: TypeAlias = BadgeReward | CoinReward


def badge_data(reward: Reward) -> Optional[dict]:
    if not isinstance(reward, BadgeReward) or reward.badge is None:
        return None
    return {
        "name": reward.badge.name,
        "icon_url": reward.badge.icon_url,
        "color": reward.badge.color,
    }


@dataclass(frozen=True)
class Case:
    id: str
    name: str
    price: int
    active: bool
    description: Optional[str] = None
    image_url: Optional[str] = None
    order_index: int = 0
    created_at: str = ""


@dataclass(frozen=True)
class CaseItem:
    id: str
    case_id: str
    reward: Reward
    rarity: str
    drop_rate: float
    display_value: int

    @property
    def item_type(self) -> Literal["badge", "coins"]:
        return self.reward.item_type

    @property
    def badge_id(self) -> Optional[str]:
        return self.reward.badge_id if isinstance(self.reward, BadgeReward) else None

    @property
    def coin_amount(self) -> Optional[int]:
        return self.reward.amount if isinstance(self.reward, CoinReward) else None

    @property
    def name(self) -> str:
        match self.reward:
            case CoinReward(amount=amount):
                return f"{amount} Coins"
            case BadgeReward(badge=Badge(name=name)):
                return name
            case _:
                return "Mystery Item"


@dataclass(frozen=True)
class Profile:
    id: str
    username: str
    display_name: Optional[str]
    uc_balance: str


@dataclass(frozen=True)
class InventoryItem:
    id: str
    user_id: str
    reward: Reward
    rarity: str
    estimated_value: int
    won_from_case_id: Optional[str]
    won_at: str
    sold: bool
    sold_at: Optional[str]
    case_name: Optional[str] = None

    @property
    def item_type(self) -> Literal["badge", "coins"]:
        return self.reward.item_type

    @property
    def badge_id(self) -> Optional[str]:
        return self.reward.badge_id if isinstance(self.reward, BadgeReward) else None

    @property
    def coin_amount(self) -> Optional[int]:
        return self.reward.amount if isinstance(self.reward, CoinReward) else None


@dataclass(frozen=True)
class CaseTransaction:
    id: int
    user_id: str
    case_id: str
    transaction_type: str
    items_won: list[dict]
    total_value: int
    tx: str
    created_at: str
    case_name: Optional[str] = None


@dataclass(frozen=True)
class LiveFeedEntry:
    id: int
    user_id: str
    username: str
    case_name: str
    item_name: str
    item_rarity: str
    item_value: int
    created_at: str


@dataclass(frozen=True)
class OpenResult:
    item: CaseItem
    new_balance: int


@dataclass(frozen=True)
class SellResult:
    items_sold: int
    coins_earned: int
    new_balance: int
