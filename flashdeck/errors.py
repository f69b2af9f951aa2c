class FlashdeckError(Exception):
    """Base class for every error raised by flashdeck."""


class ContractViolation(FlashdeckError):
    """The caller broke the review state machine or the rating contract."""


class InvalidRatingError(ContractViolation, ValueError):
    pass


class InvalidTransitionError(ContractViolation):
    pass


class StoreError(FlashdeckError):
    """The card store failed; the operation can be retried."""


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class CardNotFoundError(FlashdeckError, KeyError):
    def __init__(self, card_id: str):
        super().__init__(card_id)
        self.card_id = card_id

    def __str__(self):
        return f"Card not found: {self.card_id}"


class SessionNotFoundError(FlashdeckError, KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self):
        return f"Session not found: {self.session_id}"
