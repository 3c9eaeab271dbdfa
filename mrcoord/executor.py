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

"""Remote Executor: start worker processes on other machines.

The orchestrator describes each process with a Command (a node plus the
argument list to run there).  An executor turns that into a local process,
normally an ssh session, and reports its exit status.  Exit status says
nothing about task success; workers report that over the wire.
"""

import collections
import os
import shlex
import subprocess

from .errors import LaunchError

from logging import getLogger
logger = getLogger('mrcoord')

DEFAULT_SSH_KEY = '~/.ssh/mr-key'
DEFAULT_ZONE = 'us-west2-a'
LAUNCHERS = ('ssh', 'gcloud', 'local')


class Command(collections.namedtuple('Command', 'node argv')):
    """A command to run on a remote node."""
    __slots__ = ()

    def command_line(self):
        """The argv as a single shell-quoted string."""
        return ' '.join(shlex.quote(arg) for arg in self.argv)

    def __str__(self):
        return '%s: %s' % (self.node, self.command_line())


class SubprocessExecutor(object):
    """Runs commands with subprocess, reaching nodes through ssh or gcloud.

    The 'ssh' launcher runs `ssh -i KEY NODE COMMAND`; the 'gcloud' launcher
    runs `gcloud compute ssh NODE --zone=ZONE --command=COMMAND`.  The
    'local' launcher ignores the node and runs the argv directly, which is
    handy for trying a job on a single machine.
    """
    def __init__(self, launcher='ssh', ssh_key=DEFAULT_SSH_KEY,
            zone=DEFAULT_ZONE):
        if launcher not in LAUNCHERS:
            raise ValueError('Unknown launcher: %s' % launcher)
        self.launcher = launcher
        self.ssh_key = ssh_key
        self.zone = zone

    def popen_args(self, command):
        """The local argument list that runs command on its node."""
        if self.launcher == 'local':
            return list(command.argv)
        elif self.launcher == 'gcloud':
            return ['gcloud', 'compute', 'ssh', command.node,
                    '--zone=%s' % self.zone,
                    '--command=%s' % command.command_line()]
        else:
            return ['ssh', '-i', os.path.expanduser(self.ssh_key),
                    command.node, command.command_line()]

    def start(self, command):
        """Start the command and return a handle for wait()."""
        args = self.popen_args(command)
        logger.debug('Running: %s' % ' '.join(args))
        try:
            return subprocess.Popen(args)
        except (OSError, ValueError) as e:
            raise LaunchError('%s (%s)' % (e, command))

    def wait(self, handle):
        """Block until the process exits and return its exit status."""
        try:
            return handle.wait()
        except OSError as e:
            raise LaunchError(e)

# vim: et sw=4 sts=4
