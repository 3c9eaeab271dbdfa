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

"""Worker side of the protocol

A worker process is started on a remote node by the coordinator.  It asks
for a file pattern (WORKER_READY), runs the user's executable on it, and
reports JOB_SUCCEEDED or JOB_FAILED.  When the coordinator answers
SERVER_DONE, the worker exits.  Each message uses a new connection.
"""

import errno
import socket
import subprocess
import time

from . import protocol
from .errors import (ConnectionIOError, ProtocolError, ERR_CONNECTING)

from logging import getLogger
logger = getLogger('mrcoord')

# The coordinator refuses connections while its backlog is full.
RETRIES = 10
RETRY_DELAY = 5


def parse_address(address, default_port=None):
    """Split 'host:port' into a (host, port) pair.

    >>> parse_address('mr-master:8000')
    ('mr-master', 8000)
    >>>
    """
    host, sep, port = address.rpartition(':')
    if not sep:
        if default_port is None:
            raise ValueError('No port in address: %s' % address)
        return address, default_port
    return host, int(port)


class WorkerClient(object):
    """Sends single-frame requests to the coordinator."""

    def __init__(self, address, timeout=None, retries=RETRIES,
            retry_delay=RETRY_DELAY):
        if isinstance(address, str):
            address = parse_address(address)
        self.address = address
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay

    def connect(self):
        for i in range(self.retries):
            try:
                return socket.create_connection(self.address, self.timeout)
            except socket.error as e:
                if e.errno == errno.ECONNREFUSED and i + 1 < self.retries:
                    logger.error('Connection to %s:%s refused; retrying.'
                            % self.address)
                    time.sleep(self.retry_delay)
                    continue
                raise ConnectionIOError(e, ERR_CONNECTING)
        raise ConnectionIOError('no connection attempts made', ERR_CONNECTING)

    def request(self, frame, expect_reply=False):
        """Send a frame and, if expect_reply, return the response frame."""
        sock = self.connect()
        try:
            protocol.write_frame(sock, frame, half_close=True)
            if expect_reply:
                return protocol.read_frame(sock)
        finally:
            sock.close()

    def worker_ready(self):
        """Ask for work.  Returns a file pattern, or None when done."""
        reply = self.request(protocol.encode(protocol.WORKER_READY), True)
        if not reply:
            raise ProtocolError('empty reply to WORKER_READY')
        return protocol.decode_reply(reply)

    def job_started(self, info):
        self.request(protocol.encode(protocol.JOB_STARTED, info))

    def job_info(self, info):
        self.request(protocol.encode(protocol.JOB_INFO, info))

    def job_succeeded(self, pattern):
        self.request(protocol.encode(protocol.JOB_SUCCEEDED, pattern))

    def job_failed(self, pattern):
        self.request(protocol.encode(protocol.JOB_FAILED, pattern))


class Worker(object):
    """Pulls file patterns and runs an executable on each.

    The executable is called as `executable PATTERN ARGS...`; an exit
    status of zero means success.

    Attributes:
        client: WorkerClient connected to the coordinator
        executable: path of the user's mapper or reducer
        args: extra arguments passed after the pattern
        call: function that runs an argument list and returns its exit
            status (subprocess.call by default)
    """
    def __init__(self, client, executable, args=(), call=None):
        self.client = client
        self.executable = executable
        self.args = list(args)
        if call is None:
            call = subprocess.call
        self.call = call
        self.succeeded = 0
        self.failed = 0

    def run(self):
        """Process patterns until the coordinator has no more work."""
        while True:
            pattern = self.client.worker_ready()
            if pattern is None:
                logger.info('Coordinator has no more work (%s succeeded,'
                        ' %s failed).' % (self.succeeded, self.failed))
                return 0
            self.run_task(pattern)

    def run_task(self, pattern):
        self.client.job_started(pattern)
        argv = [self.executable, pattern] + self.args
        logger.info('Running: %s' % ' '.join(argv))
        try:
            status = self.call(argv)
        except OSError as e:
            logger.error('Could not run %s: %s' % (self.executable, e))
            self.client.job_info('could not run %s on %s: %s'
                    % (self.executable, pattern, e))
            status = None

        if status == 0:
            self.succeeded += 1
            self.client.job_succeeded(pattern)
        else:
            self.failed += 1
            if status is not None:
                self.client.job_info('%s exited with status %s on %s'
                        % (self.executable, status, pattern))
            self.client.job_failed(pattern)

# vim: et sw=4 sts=4
