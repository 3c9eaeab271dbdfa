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

"""The Job Run: a map phase, then a reduce phase

A JobRun owns the dispatcher for its whole lifetime.  It runs the dispatch
loop in a background thread, drives the MAP phase and then the REDUCE
phase through the orchestrator, and closes the listening socket exactly
once when the run ends, successfully or not.
"""

import os
import socket
import threading

from .dispatcher import Dispatcher, DEFAULT_PORT
from .errors import ConfigError, InfrastructureError, ServerError
from .executor import DEFAULT_SSH_KEY, DEFAULT_ZONE, LAUNCHERS
from .nodes import NodeInventory
from .orchestrator import PhaseOrchestrator
from .param import ParamObj, Param

from logging import getLogger
logger = getLogger('mrcoord')

MAP = 'MAP'
REDUCE = 'REDUCE'
PHASES = (MAP, REDUCE)

PAD_WIDTH = 4
MAPPED_SUFFIX = '.mapped'


class JobConfig(ParamObj):
    _params = dict(
        port=Param(default=DEFAULT_PORT, type='int', shortopt='-P',
            doc='Port to listen on for worker requests (0 picks one)'),
        master=Param(default='',
            doc='Address workers use to reach the coordinator'
                ' (default: this hostname)'),
        input_dir=Param(doc='Directory of input shards, one per map unit'),
        intermediate_dir=Param(doc='Directory for mapper output'),
        output_dir=Param(doc='Directory for reducer output'),
        mappers=Param(default=1, type='int',
            doc='Number of mapper processes to start'),
        reducers=Param(default=1, type='int',
            doc='Number of reducer processes to start'),
        map_only=Param(type='bool', doc='Stop after the map phase'),
        mr=Param(default='mrcoord-worker',
            doc='Worker program to run on the nodes'),
        mapper_exe=Param(doc='Mapper executable run by each worker'),
        reducer_exe=Param(doc='Reducer executable run by each worker'),
        hosts=Param(doc='Hosts file listing the nodes'),
        nodes=Param(doc='Comma-separated node names (instead of --hosts)'),
        launcher=Param(default='ssh',
            doc='How to reach nodes: %s' % ', '.join(LAUNCHERS)),
        ssh_key=Param(default=DEFAULT_SSH_KEY, doc='ssh identity file'),
        zone=Param(default=DEFAULT_ZONE, doc='Zone for the gcloud launcher'),
        sudo=Param(type='bool', doc='Run the worker program with sudo'),
        seed=Param(doc='Random seed for node choice'),
        read_timeout=Param(default=30, type='float',
            doc='Seconds a worker connection may take to send its message'
                ' before it is dropped (0 waits forever)'),
        )

    def validate(self):
        """Raise ConfigError if the configuration cannot run a job."""
        if self.mappers < 1:
            raise ConfigError('The number of mappers must be positive.')
        if self.reducers < 1:
            raise ConfigError('The number of reducers must be positive.')
        if not self.input_dir or not os.path.isdir(self.input_dir):
            raise ConfigError('Input directory not found: %s'
                    % self.input_dir)
        if not self.intermediate_dir:
            raise ConfigError('No intermediate directory given.')
        if not self.mapper_exe:
            raise ConfigError('No mapper executable given.')
        if not self.map_only:
            if not self.output_dir:
                raise ConfigError('No output directory given.')
            if not self.reducer_exe:
                raise ConfigError('No reducer executable given.')
        if self.launcher not in LAUNCHERS:
            raise ConfigError('Unknown launcher: %s' % self.launcher)
        if not (self.hosts or self.nodes):
            raise ConfigError('No nodes given (use --hosts or --nodes).')
        if self.read_timeout < 0:
            raise ConfigError('The read timeout must not be negative.')

    def inventory(self):
        if self.hosts:
            return NodeInventory.from_file(self.hosts)
        return NodeInventory.from_names(self.nodes or '')

    @property
    def partitions(self):
        """Number of intermediate groups each mapper hashes its output into.
        """
        return self.mappers * self.reducers


def padded_number(number, width=PAD_WIDTH):
    return str(number).zfill(width)


def map_patterns(input_dir):
    """One file pattern per input shard (regular, non-hidden file)."""
    patterns = []
    for name in sorted(os.listdir(input_dir)):
        path = os.path.join(input_dir, name)
        if name.startswith('.') or not os.path.isfile(path):
            continue
        patterns.append(path)
    return patterns


def reduce_patterns(intermediate_dir, mappers, reducers):
    """One file pattern per intermediate group.

    There are mappers * reducers groups.  Group i is the set of files named
    `*.<i>.mapped` in the intermediate directory.
    """
    return [os.path.join(intermediate_dir,
                '*.%s%s' % (padded_number(i), MAPPED_SUFFIX))
            for i in range(mappers * reducers)]


class JobRun(object):
    """A single run of a MapReduce job.

    Attributes:
        config: JobConfig for the run
        inventory: NodeInventory that workers are started on
        dispatcher: Dispatcher answering worker requests
        orchestrator: PhaseOrchestrator that runs each phase
        phase: the current phase (None before the run starts)
        reports: list of PhaseReport, one per finished phase
        error: the fatal error that ended the dispatch loop, if any
    """
    def __init__(self, config, executor, inventory=None, chooser=None,
            dispatcher=None):
        self.config = config
        if inventory is None:
            inventory = config.inventory()
        self.inventory = inventory
        if dispatcher is None:
            dispatcher = Dispatcher(('', config.port), inventory,
                    config.read_timeout or None)
        self.dispatcher = dispatcher
        self.orchestrator = PhaseOrchestrator(dispatcher, executor,
                inventory, chooser)

        self.phase = None
        self.reports = []
        self.error = None
        self._serve_thread = None

    def run(self):
        """Run the MAP phase and, unless map-only, the REDUCE phase.

        Returns the list of PhaseReports.  Raises InfrastructureError if
        the run had to be aborted.
        """
        try:
            self.start()
            self.run_phase(MAP)
            if not self.config.map_only:
                self.run_phase(REDUCE)
        finally:
            self.shut_down()
        if self.error is not None:
            raise self.error
        return self.reports

    def start(self):
        """Bind the listening socket and start the dispatch loop thread."""
        self.dispatcher.bind()
        self._serve_thread = threading.Thread(target=self._serve,
                name='Dispatcher')
        self._serve_thread.daemon = True
        self._serve_thread.start()
        logger.info('Workers will connect to %s.' % self.master_address())

    def _serve(self):
        try:
            self.dispatcher.serve_forever()
        except InfrastructureError as e:
            self._dispatcher_failed(e)
        except Exception as e:
            self._dispatcher_failed(ServerError(e, 'dispatcher failed'))

    def _dispatcher_failed(self, error):
        logger.critical('Dispatcher stopped: %s' % error)
        self.error = error
        self.orchestrator.abort(error)

    def run_phase(self, phase):
        self.phase = phase
        config = self.config
        if phase == MAP:
            patterns = map_patterns(config.input_dir)
            report = self.orchestrator.run_phase(phase, patterns,
                    config.mappers, self.mapper_argv)
        elif phase == REDUCE:
            patterns = reduce_patterns(config.intermediate_dir,
                    config.mappers, config.reducers)
            report = self.orchestrator.run_phase(phase, patterns,
                    config.reducers, self.reducer_argv)
        else:
            raise ValueError('Unknown phase: %s' % phase)
        self.reports.append(report)
        return report

    def mapper_argv(self, node):
        config = self.config
        return self._worker_argv(config.mapper_exe, config.intermediate_dir,
                str(config.partitions))

    def reducer_argv(self, node):
        config = self.config
        return self._worker_argv(config.reducer_exe, config.output_dir)

    def _worker_argv(self, *args):
        argv = []
        if self.config.sudo:
            argv.append('sudo')
        argv.append(self.config.mr)
        argv.append('--mrc-master=%s' % self.master_address())
        argv.extend(args)
        return argv

    def master_address(self):
        """The host:port that workers dial."""
        host = self.config.master or socket.gethostname()
        if ':' in host:
            return host
        return '%s:%s' % (host, self.dispatcher.port)

    def shut_down(self):
        self.dispatcher.shutdown()
        if self._serve_thread is not None:
            self._serve_thread.join()
        self.dispatcher.close()
        logger.info('Coordinator shut down.')

# vim: et sw=4 sts=4
