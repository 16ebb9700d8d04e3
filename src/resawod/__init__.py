"""RESAWOD auto-scheduler: books recurring training slots on Nubapp.

One booking loop per (user, weekday) waits for the provider's booking window
and books the slot, falling back to the waiting list. A watcher promotes
waiting-list entries when places free up.
"""

from resawod.booking import BookingOutcome, OutcomeKind
from resawod.ledger import BookedSlotLedger
from resawod.status import SchedulerEntry, StatusTable
from resawod.supervisor import Scheduler

__all__ = [
    "BookedSlotLedger",
    "BookingOutcome",
    "OutcomeKind",
    "Scheduler",
    "SchedulerEntry",
    "StatusTable",
]
