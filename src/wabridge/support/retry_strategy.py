from wabridge.support.mixins import CommonEqualityMixin, StringerMixin


class RetryPolicy(CommonEqualityMixin, StringerMixin):
    """
    Linear backoff with a cap.

    The delay grows with the number of consecutive failed attempts, and is capped at max_delay.
    An attempt count of zero is treated as one, so a retry following a credential reset still waits
    one base delay.

    When the number of attempts reaches max_attempts, the caller should assume the session state is
    corrupted and start over with fresh credentials.
    """

    def __init__(self, max_attempts=5, base_delay=5.0, max_delay=60.0, multiplier=1.0):
        """
        :param max_attempts: consecutive failures before the credentials are discarded
        :param base_delay: delay in seconds for the first retry
        :param max_delay: upper bound for the delay, in seconds
        :param multiplier: scales the per-attempt growth of the delay
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier

    def delay(self, attempts):
        """
        >>> RetryPolicy(base_delay=5, max_delay=60).delay(3)
        15.0
        >>> RetryPolicy(base_delay=5, max_delay=12).delay(3)
        12.0
        """
        return float(min(self.base_delay * self.multiplier * max(attempts, 1), self.max_delay))

    def exhausted(self, attempts):
        return attempts >= self.max_attempts
