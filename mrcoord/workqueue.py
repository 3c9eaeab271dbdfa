# Mrcoord
# Copyright 2008-2012 Brigham Young University
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Per-phase queue of file patterns waiting to be processed."""

import collections

from logging import getLogger
logger = getLogger('mrcoord')


class WorkQueue(object):
    """Pending and leased file patterns for a single phase.

    Every pattern of the phase is in exactly one place: pending, leased to
    some worker, or completed.  The queue has no lock.  It must only be
    mutated from the dispatcher's serve loop, which handles one request at
    a time.

    Attributes:
        phase: name of the phase, for log messages
        _pending: deque of patterns that have not been handed out
        _leases: Counter mapping (worker, pattern) pairs to the number of
            times that pair is currently leased
        _leased: Counter mapping each pattern to its number of leases
        _completed: set of patterns that were reported as done
    """
    def __init__(self, patterns=(), phase=''):
        self.phase = phase
        self._pending = collections.deque(patterns)
        self._leases = collections.Counter()
        self._leased = collections.Counter()
        self._completed = set()
        self._known = set(self._pending)

    def pull(self, worker):
        """Lease the next pending pattern to the given worker.

        Returns None, without changing anything, if nothing is pending.
        """
        try:
            pattern = self._pending.popleft()
        except IndexError:
            return None
        self._leases[worker, pattern] += 1
        self._leased[pattern] += 1
        logger.debug('Leased %s to %s.' % (pattern, worker))
        return pattern

    def complete(self, worker, pattern):
        """Release a lease because the worker finished the pattern.

        Duplicate or late reports (with no matching lease) are ignored.
        Returns True if a lease was released.
        """
        if not self._release(worker, pattern):
            logger.info('Ignoring completion of %s from %s: not leased.'
                    % (pattern, worker))
            return False
        self._completed.add(pattern)
        return True

    def fail(self, worker, pattern):
        """Return a pattern to the end of the pending queue.

        The pattern can then be pulled by any worker, including the one that
        failed it.  There is no limit on the number of retries.  Returns True
        if the pattern was requeued.
        """
        if not self._release(worker, pattern):
            if pattern in self._known:
                # Still pending, leased to another worker, or completed.
                logger.info('Ignoring failure of %s from %s: not leased.'
                        % (pattern, worker))
                return False
            logger.warning('Failure reported for unknown pattern %s by %s;'
                    ' queueing it.' % (pattern, worker))
            self._known.add(pattern)
        self._pending.append(pattern)
        return True

    def is_drained(self):
        """True if nothing is pending (some patterns may still be leased)."""
        return not self._pending

    def _release(self, worker, pattern):
        key = worker, pattern
        if self._leases[key] <= 0:
            return False
        _decrement(self._leases, key)
        _decrement(self._leased, pattern)
        return True

    def _is_leased(self, pattern):
        return self._leased[pattern] > 0

    @property
    def pending(self):
        """A snapshot of the pending patterns, in queue order."""
        return list(self._pending)

    def leases(self):
        """List of (worker, pattern) pairs, one per outstanding lease."""
        return list(self._leases.elements())

    @property
    def outstanding(self):
        """Number of patterns leased but not yet reported."""
        return sum(self._leases.values())

    @property
    def completed_count(self):
        return len(self._completed)

    @property
    def total(self):
        return len(self._known)

    def __len__(self):
        return len(self._pending)

    def __contains__(self, pattern):
        return pattern in self._pending or self._is_leased(pattern)

    def __repr__(self):
        return ('WorkQueue(%s: %s pending, %s leased, %s completed)'
                % (self.phase, len(self._pending), self.outstanding,
                    len(self._completed)))

    def _consistency_check(self):
        """Assert that every known pattern is in exactly one place."""
        places = collections.Counter(self._pending)
        for (_, pattern), count in self._leases.items():
            places[pattern] += count
        for pattern in self._completed:
            places[pattern] += 1
        for pattern in self._known:
            assert places[pattern] == 1, (pattern, places[pattern])
        assert set(places) == self._known
        leased = collections.Counter()
        for (_, pattern), count in self._leases.items():
            leased[pattern] += count
        assert leased == self._leased, (leased, self._leased)


def _decrement(counter, key):
    if counter[key] == 1:
        del counter[key]
    else:
        counter[key] -= 1

# vim: et sw=4 sts=4
