"""Error taxonomy of the fairness engine.

Every error carries the HTTP status the API answers with and a
``public_detail`` safe to show to end users. Internal details stay in the
exception message and the logs.
"""

GENERIC_OUTCOME_FAILURE = "could not generate a fair outcome, please retry"


class FairnessError(Exception):
    status_code = 500
    public_detail = GENERIC_OUTCOME_FAILURE


class SeedNotFoundError(FairnessError):
    status_code = 404
    public_detail = "server seed not found"


class SeedAlreadyRevealedError(FairnessError):
    status_code = 409
    public_detail = "server seed has already been revealed"


class SeedAlreadyActiveError(FairnessError):
    """A new seed was requested while another one is still active."""

    status_code = 409
    public_detail = "an active server seed already exists"


class SeedNotRevealedError(FairnessError):
    status_code = 409
    public_detail = "server seed has not been revealed yet"


class StaleSeedError(FairnessError):
    """The nonce was requested against a seed that is no longer active.
    Callers retry against the current active seed."""

    status_code = 409


class NonceConflictError(FairnessError):
    """Concurrent reuse of a nonce was detected. The request is aborted and
    never retried with the same nonce."""

    status_code = 409


class InvalidClientSeedError(FairnessError):
    status_code = 422
    public_detail = "client seed must be a non-empty printable string of bounded length"


class InvalidBetParamsError(FairnessError):
    status_code = 422
    public_detail = "invalid bet parameters"


class InvalidCrateDistributionError(FairnessError):
    status_code = 422
    public_detail = "crate distribution is malformed"


class WeightSumMismatchError(InvalidCrateDistributionError):
    public_detail = "crate weights do not sum to 1"


class CrateNotFoundError(FairnessError):
    status_code = 404
    public_detail = "crate not found"


class RoundNotFoundError(FairnessError):
    status_code = 404
    public_detail = "game round not found"


class OutcomeGenerationError(FairnessError):
    """Derivation, mapping or persistence failed after the nonce was reserved."""


class RandomnessUnavailableError(FairnessError):
    status_code = 503


class VerificationMismatchError(FairnessError):
    """Recomputed data disagrees with published data. When stored data
    contradicts itself this implies tampering or a bug and is recorded in the
    audit log before it is raised; a verifier's wrong seed is not."""

    status_code = 409
    public_detail = "verification failed; the round has been referred for review"
