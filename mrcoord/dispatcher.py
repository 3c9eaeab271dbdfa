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

"""Connection Dispatcher: the coordinator's single request loop

The dispatcher owns the listening socket.  It accepts one connection at a
time, reads exactly one frame, routes it to a handler, writes at most one
response and closes the connection.  Because requests are handled strictly
one after another, the work queue itself needs no locking.  Other threads
replace it only through install_queue, which waits for the request in
progress, so a queue that has been swapped out is never touched again.

The serve loop waits with poll on the listening socket and on a pipe.
Writing a byte to the pipe (see shutdown) stops the loop from any thread.
"""

import os
import select
import socket
import threading

from . import protocol
from .errors import ServerError, ERR_ACCEPTING

from logging import getLogger
logger = getLogger('mrcoord')

# Socket backlog (argument to socket.listen).
# The maximum is defined by /proc/sys/net/core/somaxconn (128 by default).
BACKLOG = 1024
DEFAULT_PORT = 8000


class Dispatcher(object):
    """Accepts worker connections and answers their requests.

    Attributes:
        address: (host, port) pair to listen on; port 0 picks a free port
        inventory: optional NodeInventory used to label worker addresses
        work_queue: the WorkQueue of the active phase, or None between
            phases
        timeout: optional per-connection socket timeout in seconds; a peer
            that does not finish its frame in time is dropped
    """
    def __init__(self, address=('', DEFAULT_PORT), inventory=None,
            timeout=None):
        self.address = address
        self.inventory = inventory
        self.timeout = timeout
        self.work_queue = None
        self.socket = None

        self._running = False
        self._closed = False
        self._queue_lock = threading.Lock()
        self._quit_pipe, self._quit_write_pipe = os.pipe()

    def bind(self):
        """Create the listening socket.

        Raises ServerError if the address cannot be bound.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(self.address)
            sock.listen(BACKLOG)
        except socket.error as e:
            sock.close()
            raise ServerError(e)
        self.socket = sock
        logger.info('Server listening on port %s.' % self.port)

    @property
    def port(self):
        if self.socket is None:
            return None
        return self.socket.getsockname()[1]

    def serve_forever(self):
        """Handle requests, one at a time, until shutdown is called.

        Socket failures are not caught here: a ServerError or
        ConnectionIOError ends the loop and propagates to the caller.
        """
        if self.socket is None:
            self.bind()

        poll = select.poll()
        poll.register(self.socket.fileno(), select.POLLIN)
        poll.register(self._quit_pipe, select.POLLIN)

        self._running = True
        try:
            while self._running:
                for fd, event in poll.poll():
                    if fd == self._quit_pipe:
                        # The data is irrelevant; it just wakes us up.
                        os.read(self._quit_pipe, 4096)
                        self._running = False
                    else:
                        self.handle_request()
        finally:
            self._running = False
        logger.debug('Serve loop stopped.')

    def handle_request(self):
        """Accept a single connection and serve it."""
        try:
            conn, client_address = self.socket.accept()
        except socket.error as e:
            raise ServerError(e, ERR_ACCEPTING)
        try:
            self.handle_connection(conn, client_address[0])
        finally:
            conn.close()

    def handle_connection(self, conn, host):
        """Read one frame from conn, dispatch it, and write the response."""
        logger.info('Received connection request from: %s'
                % self.node_label(host))
        if self.timeout:
            conn.settimeout(self.timeout)

        try:
            frame = protocol.read_frame(conn)
        except (protocol.FrameTooLarge, protocol.FrameTimeout) as e:
            logger.warning('Ignoring message from %s: %s'
                    % (self.node_label(host), e))
            return

        response = self.dispatch(host, frame)
        if response is not None:
            protocol.write_frame(conn, response)

    def dispatch(self, worker, frame):
        """Decode a frame from the given worker and call its handler.

        Returns the response frame, or None if the message gets no
        response.
        """
        message = protocol.decode(frame)
        logger.debug('Received worker message: %s' % message.kind)

        if message.kind in protocol.NEEDS_PAYLOAD and not message.payload:
            logger.warning('Ignoring %s without a file pattern from %s.'
                    % (message.kind, self.node_label(worker)))
            return None

        handler = getattr(self, 'handle_' + message.kind.lower())
        with self._queue_lock:
            return handler(self.work_queue, worker, message.payload)

    def install_queue(self, queue):
        """Make queue the work queue for requests from now on.

        Waits for the request being handled, if any, so the previous queue
        is no longer in use when this returns.  Safe to call from any
        thread.
        """
        with self._queue_lock:
            self.work_queue = queue

    def handle_worker_ready(self, queue, worker, payload):
        if queue is None:
            logger.info('No active phase; telling %s we are done.'
                    % self.node_label(worker))
            return protocol.encode_reply(None)

        pattern = queue.pull(worker)
        if pattern is None:
            logger.info('No work left for %s.' % self.node_label(worker))
        else:
            logger.info('Assigned %s to %s.'
                    % (pattern, self.node_label(worker)))
        return protocol.encode_reply(pattern)

    def handle_job_succeeded(self, queue, worker, pattern):
        if self._no_phase(queue, worker, protocol.JOB_SUCCEEDED, pattern):
            return None
        if queue.complete(worker, pattern):
            logger.info('%s finished %s (%s of %s done).'
                    % (self.node_label(worker), pattern,
                        queue.completed_count, queue.total))
        return None

    def handle_job_failed(self, queue, worker, pattern):
        if self._no_phase(queue, worker, protocol.JOB_FAILED, pattern):
            return None
        logger.warning('%s failed %s.' % (self.node_label(worker), pattern))
        if queue.fail(worker, pattern):
            logger.info('Rescheduled %s.' % pattern)
        return None

    def handle_job_started(self, queue, worker, info):
        logger.info('Job started on %s: %s' % (self.node_label(worker), info))
        return None

    def handle_job_info(self, queue, worker, info):
        logger.info('Received job info from %s: %s'
                % (self.node_label(worker), info))
        return None

    def handle_server_done(self, queue, worker, payload):
        logger.warning('Ignoring SERVER_DONE sent by worker %s.'
                % self.node_label(worker))
        return None

    def handle_unknown(self, queue, worker, text):
        logger.warning('Ignoring unrecognized message from %s: %r'
                % (self.node_label(worker), text))
        return None

    def _no_phase(self, queue, worker, kind, pattern):
        if queue is None:
            logger.warning('Ignoring %s %s from %s: no active phase.'
                    % (kind, pattern, self.node_label(worker)))
            return True
        return False

    def node_label(self, address):
        if self.inventory is None:
            return address
        label = self.inventory.label(address)
        if label == address:
            return address
        return '%s (%s)' % (label, address)

    def shutdown(self):
        """Ask the serve loop to stop.  Safe to call from any thread."""
        if not self._closed:
            os.write(self._quit_write_pipe, b'\0')

    def close(self):
        """Close the listening socket.  Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True
        if self.socket is not None:
            self.socket.close()
        os.close(self._quit_pipe)
        os.close(self._quit_write_pipe)
        logger.debug('Listening socket closed.')

# vim: et sw=4 sts=4
