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

"""Mrcoord: a coordinator for MapReduce jobs run on remote workers

The coordinator hands out file patterns to worker processes that it starts
on remote nodes.  A run looks something like this:

import mrcoord

job = mrcoord.JobRun(config, executor)
job.run()

Most users start it from the command line instead (see mrcoord.main).
"""

# Set up the default logging configuration.
import logging, sys
logger = logging.getLogger('mrcoord')
logger.setLevel(logging.WARNING)
handler = logging.StreamHandler(sys.stderr)
format = '%(asctime)s: %(levelname)s: %(message)s'
formatter = logging.Formatter(format)
handler.setFormatter(formatter)
logger.addHandler(handler)

# rather than importing all submodules, we just import the ones that are
# expected to be useful outside of mrcoord internals.
from . import version
from .coordinator import JobConfig, JobRun, MAP, REDUCE
from .errors import (MapReduceError, InfrastructureError, ConfigError,
        ProtocolError)
from .executor import Command, SubprocessExecutor
from .main import main
from .nodes import NodeInventory, RandomChoice
from .workqueue import WorkQueue

__version__ = version.__version__

__all__ = ['JobConfig', 'JobRun', 'MAP', 'REDUCE', 'MapReduceError',
    'InfrastructureError', 'ConfigError', 'ProtocolError', 'Command',
    'SubprocessExecutor', 'main', 'NodeInventory', 'RandomChoice',
    'WorkQueue', 'logger']

# vim: et sw=4 sts=4
