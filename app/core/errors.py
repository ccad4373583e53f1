"""
Error taxonomy for the analytics pipeline.

Cache failures never raise (the cache degrades to a miss), so there is no
cache error here. Store and queue failures do, and bad queue messages are
reported as decode errors so workers can log and skip them.
"""


class AnalyticsError(Exception):
    """Base class for analytics pipeline errors."""


class StoreUnavailableError(AnalyticsError):
    """The aggregate store could not be queried."""


class QueueError(AnalyticsError):
    """A queue operation (publish, receive, ack) failed."""


class JobDecodeError(AnalyticsError):
    """A queue message body is not a valid job descriptor."""


class UnknownJobTypeError(JobDecodeError):
    """A queue message carries a job type this service does not know."""

    def __init__(self, job_type):
        super().__init__(f"Unknown job type: {job_type!r}")
        self.job_type = job_type
