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

"""Phase Orchestrator: run one phase of a job to completion

For each phase, the orchestrator installs a fresh WorkQueue on the
dispatcher, starts a fixed number of worker processes through the remote
executor, and waits until every one of them has exited.  Workers exit when
the dispatcher tells them SERVER_DONE, so the barrier is reached once the
queue drains and the last worker finishes its final unit.  Exit statuses
are logged but never affect the outcome of the phase.
"""

import collections
import threading
import traceback

from .errors import InfrastructureError, LaunchError
from .executor import Command
from .nodes import RandomChoice
from .workqueue import WorkQueue

from logging import getLogger
logger = getLogger('mrcoord')


PhaseReport = collections.namedtuple('PhaseReport',
        'phase queue exit_statuses')


class PhaseBarrier(object):
    """A counting wait: N processes start, wait() returns after N exits.

    The barrier can also be aborted with an exception, which wait() then
    raises.
    """
    def __init__(self, count):
        self._count = count
        self._error = None
        self._cond = threading.Condition(threading.Lock())

    def done(self):
        """Record that one process has exited."""
        with self._cond:
            self._count -= 1
            if self._count <= 0:
                self._cond.notify_all()

    def abort(self, error):
        """Wake up wait() and make it raise the given error."""
        with self._cond:
            if self._error is None:
                self._error = error
            self._cond.notify_all()

    def wait(self):
        with self._cond:
            while self._count > 0 and self._error is None:
                self._cond.wait()
            if self._error is not None:
                raise self._error

    @property
    def remaining(self):
        return self._count


class PhaseOrchestrator(object):
    """Starts the worker processes of a phase and waits for them.

    Attributes:
        dispatcher: Dispatcher whose work queue is replaced for each phase
            (through its install_queue method)
        executor: remote executor with start(command) and wait(handle)
        inventory: NodeInventory to choose nodes from
        chooser: node choice policy with a choose(nodes) method
    """
    def __init__(self, dispatcher, executor, inventory, chooser=None):
        self.dispatcher = dispatcher
        self.executor = executor
        self.inventory = inventory
        if chooser is None:
            chooser = RandomChoice()
        self.chooser = chooser

        self._lock = threading.Lock()
        self._barrier = None
        self._error = None

    def run_phase(self, phase, patterns, worker_count, make_argv):
        """Run a phase and block until all of its worker processes exit.

        The `make_argv` function is called with a node name and returns the
        argument list to run on that node.  Returns a PhaseReport.  Raises
        an InfrastructureError if a process cannot be started or monitored
        or if the orchestrator was aborted.
        """
        queue = WorkQueue(patterns, phase)
        barrier = PhaseBarrier(worker_count)
        exit_statuses = []
        with self._lock:
            if self._error is not None:
                raise self._error
            self._barrier = barrier

        logger.info('Starting %s phase: %s file patterns, %s workers.'
                % (phase, queue.total, worker_count))
        self.dispatcher.install_queue(queue)
        try:
            for i in range(worker_count):
                node = self.chooser.choose(self.inventory.nodes)
                command = Command(node, make_argv(node))
                logger.info('Starting %s command on remote machine: %s'
                        % (phase.lower(), node))
                t = threading.Thread(target=self.spawn_worker,
                        args=(command, barrier, exit_statuses),
                        name='%s worker %s' % (phase, i))
                t.daemon = True
                t.start()
            barrier.wait()
        finally:
            # From here on the queue belongs to this thread alone.
            self.dispatcher.install_queue(None)
            with self._lock:
                self._barrier = None

        if not queue.is_drained() or queue.outstanding:
            # Leases never expire, so a worker that died mid-task leaves
            # its pattern out of the queue for good.
            logger.warning('%s phase ended with %s pending and %s leased'
                    ' patterns: %s' % (phase, len(queue), queue.outstanding,
                        ', '.join(p for _, p in queue.leases())))
        stage_message('%s FINISHED' % phase_workers(phase))
        return PhaseReport(phase, queue, exit_statuses)

    def spawn_worker(self, command, barrier, exit_statuses):
        """Start one worker process and wait for it to exit.

        Runs in its own thread.  Any exit status releases one slot of the
        barrier; failing to start or wait for the process aborts it.
        """
        try:
            handle = self.executor.start(command)
            status = self.executor.wait(handle)
        except InfrastructureError as e:
            logger.critical('Could not run worker on %s: %s'
                    % (command.node, e))
            barrier.abort(e)
            return
        except Exception as e:
            logger.critical('Exception while running worker on %s: %s'
                    % (command.node, e))
            logger.error('Traceback: %s' % traceback.format_exc())
            barrier.abort(LaunchError(e))
            return

        logger.info('Worker command on %s exited with status: %s'
                % (command.node, status))
        exit_statuses.append(status)
        barrier.done()

    def abort(self, error):
        """End the current phase (and any later one) with the given error.

        Called from other threads, e.g. when the dispatcher fails.
        """
        with self._lock:
            if self._error is None:
                self._error = error
            barrier = self._barrier
        if barrier is not None:
            barrier.abort(error)


def phase_workers(phase):
    """'MAP' -> 'MAPPERS', 'REDUCE' -> 'REDUCERS'"""
    if phase.endswith('E'):
        return phase + 'RS'
    return phase + 'PERS'


def stage_message(message):
    bar = '=' * (len(message) + 8)
    logger.info(bar)
    logger.info('    %s' % message)
    logger.info(bar)

# vim: et sw=4 sts=4
