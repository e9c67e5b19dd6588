"""Map service-layer exceptions to HTTP responses."""
import logging
from contextlib import contextmanager

from fastapi import HTTPException

from reviewdesk.config import settings
from reviewdesk.connectors.google_business import GoogleAPIError, QuotaExceededError
from reviewdesk.connectors.openai_replies import ReplyGenerationError
from reviewdesk.pipeline.credentials import GoogleConnectionError, QuotaCooldownError
from reviewdesk.pipeline.sync import AccountNotVerifiedError, SyncAbortedError
from reviewdesk.pipeline.throttle import SyncInProgressError
from reviewdesk.replies.workflow import ReplyStateError

logger = logging.getLogger(__name__)


def quota_exception(exc: QuotaCooldownError) -> HTTPException:
    detail = {"error": str(exc), "retry_after": exc.retry_after}
    if isinstance(exc, SyncAbortedError):
        detail["partial_results"] = exc.partial
    return HTTPException(status_code=429, detail=detail, headers={"Retry-After": str(exc.retry_after)})


@contextmanager
def service_errors(context: str):
    """
    Translate domain errors raised inside the block:
    rule violations 400, concurrent sync 409, quota 429, integration failures 500.
    """
    try:
        yield
    except (ReplyStateError, GoogleConnectionError, AccountNotVerifiedError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except QuotaCooldownError as e:
        raise quota_exception(e)
    except QuotaExceededError as e:
        retry_after = e.retry_after or settings.quota_cooldown_seconds
        raise HTTPException(status_code=429, detail={"error": str(e), "retry_after": retry_after},
                            headers={"Retry-After": str(retry_after)})
    except (GoogleAPIError, ReplyGenerationError) as e:
        logger.error("%s failed: %s", context, e)
        raise HTTPException(status_code=500, detail=str(e))
