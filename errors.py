class SettlementError(ValueError):
    pass


class InvalidMembersError(SettlementError):
    pass


class UnknownMemberError(SettlementError):
    def __init__(self, member):
        super().__init__(f"Member {member} is not part of the group")
        self.member = member


class MalformedRecordError(SettlementError):
    """A stored ledger document is missing fields or has invalid values."""


class LedgerImbalanceError(SettlementError):
    """Balances handed to minimize_debts do not sum to zero."""
