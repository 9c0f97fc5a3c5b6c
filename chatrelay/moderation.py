# chatrelay/moderation.py
# Shared moderation state and the per-message admission decision.
#
# One ModerationState instance lives for the whole process and is read and written by
# every connection handler. All methods here are plain synchronous code: a decision reads
# the lock flag, the mute set and the sender's rate counter, then writes the counter,
# without ever yielding to the event loop, so no two decisions can interleave.

import enum  # For the Verdict of an admission decision.
import time  # Monotonic clock used as the default time source.
from dataclasses import dataclass  # For the mutable per-user RateCounter record.

from chatrelay import config
from chatrelay.events import LOCKED_TEXT, MUTED_TEXT, RATE_LIMITED_TEXT


# --- Admission Verdicts ---

class Verdict(enum.Enum):
    ADMITTED = 'admitted'
    RATE_LIMITED = 'rate_limited'
    LOCKED = 'locked'
    MUTED = 'muted'


# Text of the sender-only notice for each rejection.
REJECTION_NOTICES = {
    Verdict.RATE_LIMITED: RATE_LIMITED_TEXT,
    Verdict.LOCKED: LOCKED_TEXT,
    Verdict.MUTED: MUTED_TEXT,
}


# --- Shared State ---

@dataclass
class RateCounter:
    count: int
    window_start: float


class ModerationState:
    """
    Process-wide chat moderation state.

    Attributes:
        locked (bool): While True only admins may post.
        muted_users (set[str]): User names barred from posting.
        rate_counters (dict[str, RateCounter]): Per-user message counts. Entries are created
            on a user's first message and kept for the life of the process.
    """

    def __init__(self):
        self.locked = False
        self.muted_users = set()
        self.rate_counters = {}

    def toggle_lock(self):
        """Flips the lock flag and returns the new value."""
        self.locked = not self.locked
        return self.locked

    def mute(self, user_name):
        """Bars `user_name` from posting until unmuted. Names are case-sensitive."""
        self.muted_users.add(user_name)

    def unmute(self, user_name):
        """Lets `user_name` post again; unmuting someone who is not muted does nothing."""
        self.muted_users.discard(user_name)

    def is_muted(self, user_name):
        """True if `user_name` is currently muted."""
        return user_name in self.muted_users


# --- Rate Limiting ---

class RateLimiter:
    """
    Fixed-window message counter per user.

    A window lasts `reset_interval_ms`; once more than that has passed since the window
    started, the next message opens a fresh window. Up to `message_limit` messages are
    admitted per window. Because windows are fixed, a burst straddling a boundary can
    admit up to twice the limit within one interval.
    """

    def __init__(self, state, message_limit=None, reset_interval_ms=None):
        self.state = state
        self.message_limit = config.MESSAGE_LIMIT if message_limit is None else message_limit
        self.reset_interval_ms = config.RESET_INTERVAL_MS if reset_interval_ms is None else reset_interval_ms

    def window(self, user_name, now):
        """
        Returns the user's counter, resetting it first if its window has expired.

        Args:
            user_name (str): The sender.
            now (float): Current monotonic time in seconds.
        """
        counter = self.state.rate_counters.get(user_name)
        if counter is None:
            counter = RateCounter(count=0, window_start=now)
            self.state.rate_counters[user_name] = counter
        elif (now - counter.window_start) * 1000 > self.reset_interval_ms:
            counter.count = 0
            counter.window_start = now
        return counter

    def exhausted(self, user_name, now):
        """True if the user has no messages left in the current window."""
        return self.window(user_name, now).count >= self.message_limit

    def admit(self, user_name, now):
        """Counts one message if the window has room. Returns whether it was admitted."""
        counter = self.window(user_name, now)
        if counter.count < self.message_limit:
            counter.count += 1
            return True
        return False

    def record(self, user_name, now):
        """Counts one message regardless of the limit (used for admins)."""
        self.window(user_name, now).count += 1


# --- Admission Policy ---

class AdmissionGate:
    """
    Decides whether a chat message may be broadcast.

    Non-admins are checked in this order, and the first failing check wins:
    rate limit, then chat lock, then mute. Admins are never lock- or mute-checked
    and are never rate limited, but their messages are still counted.
    """

    def __init__(self, state, limiter, clock=time.monotonic):
        self.state = state
        self.limiter = limiter
        self.clock = clock

    def decide(self, user, now=None):
        """
        Returns the Verdict for one message from `user`, counting it when admitted.

        Args:
            user (UserIdentity): The resolved sender.
            now (float, optional): Monotonic time in seconds; defaults to the gate's clock.
        """
        if now is None:
            now = self.clock()

        if user.admin:
            self.limiter.record(user.name, now)
            return Verdict.ADMITTED

        if self.limiter.exhausted(user.name, now):
            return Verdict.RATE_LIMITED
        if self.state.locked:
            return Verdict.LOCKED
        if self.state.is_muted(user.name):
            return Verdict.MUTED

        self.limiter.admit(user.name, now)
        return Verdict.ADMITTED
