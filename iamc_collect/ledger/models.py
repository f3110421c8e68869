"""Dataclasses for the agent ledger: societies, agents, accounts, collections, exports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from iamc_collect.ledger.lots import lot_key_from_parts, lot_label


class AccountType(str, Enum):
    """Ledger product an account belongs to."""

    PIGMY = "PIGMY"  # daily deposit scheme
    LOAN = "LOAN"
    SAVINGS = "SAVINGS"  # recurring deposits land here too


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class CollectionStatus(str, Enum):
    PENDING = "PENDING"
    EXPORTED = "EXPORTED"


@dataclass
class Society:
    id: str
    code: str
    name: str


@dataclass
class Agent:
    id: str
    society_id: str
    code: str
    name: str
    phone: Optional[str] = None
    is_active: bool = True


@dataclass
class AgentProfile:
    """Active agent joined with its society, used for login pickers."""

    society: Society
    agent: Agent


@dataclass
class Lot:
    """Partition of accounts sharing head code, account type and frequency."""

    account_type: AccountType
    frequency: Frequency
    account_head_code: Optional[str] = None
    account_head: Optional[str] = None

    @property
    def key(self) -> str:
        return lot_key_from_parts(self.account_head_code, self.account_type, self.frequency)

    @property
    def label(self) -> str:
        return lot_label(self.account_head, self.account_head_code, self.account_type, self.frequency)


@dataclass
class AccountLot(Lot):
    """Lot summary row with the number of accounts stored under it."""

    count: int = 0


@dataclass
class Account:
    id: str
    society_id: str
    agent_id: str
    account_no: str
    lot_key: str
    client_name: str
    account_type: AccountType
    frequency: Frequency
    account_head: Optional[str] = None
    account_head_code: Optional[str] = None
    installment_paise: int = 0
    balance_paise: int = 0
    last_txn_at: Optional[str] = None
    opened_at: Optional[str] = None
    closes_at: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE

    @property
    def lot(self) -> Lot:
        return Lot(
            account_type=self.account_type,
            frequency=self.frequency,
            account_head_code=self.account_head_code,
            account_head=self.account_head,
        )


@dataclass
class CollectionEntry:
    id: str
    society_id: str
    agent_id: str
    account_id: str
    account_no: str
    collected_paise: int
    collected_at: str
    collection_date: str  # YYYY-MM-DD
    status: CollectionStatus = CollectionStatus.PENDING
    exported_at: Optional[str] = None
    remarks: Optional[str] = None


@dataclass
class ExportCollectionRow(CollectionEntry):
    """Pending collection joined with the account fields needed for export files."""

    client_name: str = ""
    account_head: Optional[str] = None
    account_head_code: Optional[str] = None
    account_type: AccountType = AccountType.SAVINGS
    frequency: Frequency = Frequency.MONTHLY

    @property
    def lot(self) -> Lot:
        return Lot(
            account_type=self.account_type,
            frequency=self.frequency,
            account_head_code=self.account_head_code,
            account_head=self.account_head,
        )


@dataclass
class ExportRecord:
    id: str
    society_id: str
    agent_id: str
    exported_at: str
    file_uri: Optional[str] = None
    collections_count: int = 0


@dataclass
class CollectionTotals:
    count: int = 0
    total_paise: int = 0


@dataclass
class ParsedAccount:
    """One client row read from an agent report (amounts still in rupees)."""

    account_no: str
    client_name: str
    balance_rupees: float
    account_type: AccountType
    frequency: Frequency
    account_head: str
    account_head_code: Optional[str] = None
    installment_rupees: Optional[float] = None

    @property
    def lot_key(self) -> str:
        return lot_key_from_parts(self.account_head_code, self.account_type, self.frequency)


@dataclass
class ParsedReport:
    """Normalized agent report produced by the text and spreadsheet parsers."""

    society_name: str
    society_code: str
    agent_name: str
    agent_code: str
    report_date_iso: Optional[str] = None
    accounts: List[ParsedAccount] = field(default_factory=list)
