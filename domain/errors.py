class IdentityStoreError(Exception):
    """Base class for failures of the identity store."""


class StoreUnavailableError(IdentityStoreError):
    """The store could not be reached or a transaction could not be started."""


class RegistrationWriteError(IdentityStoreError):
    """A write inside the registration transaction failed and was rolled back."""


class DispatchError(Exception):
    """The outbound notification could not be delivered."""
