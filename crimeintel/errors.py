class CrimeIntelError(RuntimeError):
    pass


class TransferError(CrimeIntelError):
    """A remote collaborator answered with a non-success status or the transfer broke."""


class ExtractionError(CrimeIntelError):
    """The archive container is corrupt or holds no entry for the target region."""


class NotFoundError(CrimeIntelError):
    """The geocoder does not know the address. Client fault, never retried."""


class ResolutionError(CrimeIntelError):
    """Any other geocoding failure: bad status, transport error, unreadable body."""


class BatchWriteError(CrimeIntelError):
    """A sink failed to persist a batch. Earlier batches of the same call stay written."""
