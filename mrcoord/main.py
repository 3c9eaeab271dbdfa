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

"""Command-line entry points for the coordinator and the worker.

Each entry point is an implementation class whose params become
command-line options (prefixed with --mrc-).
"""

import binascii
import logging
import os
import sys
import time

from . import param
from .coordinator import JobConfig, JobRun
from .errors import ConfigError, InfrastructureError, MapReduceError
from .executor import SubprocessExecutor
from .nodes import RandomChoice
from .param import ParamObj, Param
from .version import __version__
from .worker import Worker, WorkerClient


COORDINATOR_USAGE = (""
"""%prog [OPTIONS]

Mrcoord Version """ + __version__ + """

Runs the map phase and then the reduce phase of a job on remote workers."""
)

WORKER_USAGE = (""
"""%prog --mrc-master HOST:PORT [OPTIONS] EXECUTABLE [ARGS]

Mrcoord Version """ + __version__ + """

Requests file patterns from the coordinator and runs
"EXECUTABLE PATTERN ARGS" for each one until no work is left."""
)

PREFIX = 'mrc'

# Set up the default random seed.  Inspired by how the random module works.
# Note that we keep the seed at 32 bits to make it manageable.
SEED_BYTES = 4
DEFAULT_SEED = int(binascii.hexlify(os.urandom(SEED_BYTES)), 16)

logger = logging.getLogger('mrcoord')


class BaseImplementation(ParamObj):
    """The base implementation.

    This needs to be extended to be useful.
    """

    _params = dict(
        verbose=Param(type='bool', doc='Verbose mode (set log level to INFO)'),
        debug=Param(type='bool', doc='Debug mode (set log level to DEBUG)'),
        timing_file=Param(doc='Name of a file to write timing data to'),
        )

    def main(self, args=None):
        if args is None:
            args = []

        start_time = time.time()

        if self.debug:
            logger.setLevel(logging.DEBUG)
        elif self.verbose:
            logger.setLevel(logging.INFO)
        else:
            logger.setLevel(logging.WARNING)

        try:
            return self._main(args)
        finally:
            if self.timing_file:
                with open(self.timing_file, 'w') as timing_file:
                    total_time = time.time() - start_time
                    print('total_time=%s' % total_time, file=timing_file)

    def _main(self, args):
        """Method to be overridden by subclasses."""
        raise NotImplementedError('Implementation must be extended.')


class Coordinator(BaseImplementation, JobConfig):
    """Runs a job: starts workers on the nodes and hands out work."""

    _params = dict(
        seed=Param(default=str(DEFAULT_SEED),
            doc='Random seed for node choice, default changes each run'),
        )

    def job_config(self):
        kwds = dict((name, getattr(self, name)) for name in JobConfig._params)
        return JobConfig(**kwds)

    def _main(self, args):
        if args:
            logger.critical('Unexpected arguments: %s' % ' '.join(args))
            return 1

        config = self.job_config()
        try:
            config.validate()
            inventory = config.inventory()
        except ConfigError as e:
            logger.critical(str(e))
            return 1

        executor = SubprocessExecutor(config.launcher, config.ssh_key,
                config.zone)
        job = JobRun(config, executor, inventory,
                chooser=RandomChoice(config.seed))
        try:
            job.run()
        except InfrastructureError as e:
            logger.critical('Run aborted: %s' % e)
            return 1
        return 0


class WorkerMain(BaseImplementation):
    """Runs a worker that executes a mapper or reducer on each pattern."""

    _params = dict(
        master=Param(shortopt='-M',
            doc='Address (HOST:PORT) of the coordinator'),
        timeout=Param(default=0, type='float',
            doc='Socket timeout in seconds for coordinator requests'
                ' (0 waits forever)'),
        )

    def _main(self, args):
        if not self.master:
            logger.critical('No coordinator address specified.')
            return 1
        if not args:
            logger.critical('No executable specified.')
            return 1

        try:
            client = WorkerClient(self.master, self.timeout or None)
            worker = Worker(client, args[0], args[1:])
            return worker.run()
        except (MapReduceError, ValueError) as e:
            logger.critical('Worker stopped: %s' % e)
            return 1


def option_parser(impl_class, usage):
    """Create a parser with an option group for the implementation's params.
    """
    parser = param.OptionParser(conflict_handler='resolve', usage=usage,
            version='%prog ' + __version__)
    parser.disable_interspersed_args()
    parser.add_param_object(impl_class, PREFIX)
    return parser


def run(impl_class, usage, args=None):
    """Parse the command line, run the implementation, return its status."""
    parser = option_parser(impl_class, usage)
    opts, args = parser.parse_args(args)
    impl = param.from_options(impl_class, opts, PREFIX)
    try:
        return impl.main(args)
    except KeyboardInterrupt:
        logger.critical('Quitting due to keyboard interrupt.')
        return 1


def main(args=None):
    """Entry point of the coordinator."""
    sys.exit(run(Coordinator, COORDINATOR_USAGE, args))


def worker_main(args=None):
    """Entry point of a worker process."""
    sys.exit(run(WorkerMain, WORKER_USAGE, args))

# vim: et sw=4 sts=4
