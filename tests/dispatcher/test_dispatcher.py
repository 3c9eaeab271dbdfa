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

import os
import socket
import sys
import threading

import pytest

from mrcoord import protocol
from mrcoord.coordinator import map_patterns
from mrcoord.dispatcher import Dispatcher
from mrcoord.errors import ConnectionIOError, ServerError
from mrcoord.nodes import NodeInventory
from mrcoord.worker import WorkerClient
from mrcoord.workqueue import WorkQueue


def ready(dispatcher, worker):
    frame = dispatcher.dispatch(worker, protocol.encode(protocol.WORKER_READY))
    return protocol.decode_reply(frame)

def report(dispatcher, worker, kind, pattern):
    return dispatcher.dispatch(worker, protocol.encode(kind, pattern))


@pytest.fixture
def dispatcher():
    d = Dispatcher()
    yield d
    d.close()


def test_pull_fail_and_retry(dispatcher):
    d = dispatcher
    d.work_queue = WorkQueue(['a.0.mapped', 'a.1.mapped'])

    assert ready(d, 'W1') == 'a.0.mapped'
    assert ready(d, 'W2') == 'a.1.mapped'
    assert report(d, 'W1', protocol.JOB_FAILED, 'a.0.mapped') is None
    assert ready(d, 'W2') == 'a.0.mapped'
    assert report(d, 'W2', protocol.JOB_SUCCEEDED, 'a.0.mapped') is None

    assert ready(d, 'W1') is None
    assert ready(d, 'W2') is None
    assert d.work_queue.leases() == [('W2', 'a.1.mapped')]
    d.work_queue._consistency_check()

def test_reports_get_no_response(dispatcher):
    d = dispatcher
    d.work_queue = WorkQueue(['a'])
    ready(d, 'W1')

    assert report(d, 'W1', protocol.JOB_INFO, 'halfway there') is None
    assert report(d, 'W1', protocol.JOB_STARTED, 'a') is None
    assert d.dispatch('W1', b'BOGUS a') is None
    assert d.dispatch('W1', protocol.encode(protocol.SERVER_DONE)) is None
    assert d.work_queue.leases() == [('W1', 'a')]

def test_report_without_pattern_is_ignored(dispatcher):
    d = dispatcher
    d.work_queue = WorkQueue(['a'])
    ready(d, 'W1')

    assert d.dispatch('W1', b'JOB_FAILED') is None
    assert d.dispatch('W1', b'JOB_SUCCEEDED ') is None
    assert d.work_queue.leases() == [('W1', 'a')]
    assert d.work_queue.pending == []

def test_no_active_phase(dispatcher):
    assert ready(dispatcher, 'W1') is None
    assert report(dispatcher, 'W1', protocol.JOB_SUCCEEDED, 'a') is None
    assert report(dispatcher, 'W1', protocol.JOB_FAILED, 'a') is None

@pytest.mark.skipif(sys.getfilesystemencoding() != 'utf-8',
        reason='needs a UTF-8 file system encoding')
def test_undecodable_file_name(dispatcher, tmpdir):
    input_dir = tmpdir.mkdir('input').strpath
    with open(os.path.join(os.fsencode(input_dir), b'shard-\xff'), 'w') as f:
        f.write('apple\n')
    dispatcher.work_queue = WorkQueue(map_patterns(input_dir))

    frame = dispatcher.dispatch('W1', protocol.encode(protocol.WORKER_READY))
    assert frame == os.fsencode(input_dir) + b'/shard-\xff'

    pattern = protocol.decode_reply(frame)
    assert os.path.exists(pattern)
    report(dispatcher, 'W1', protocol.JOB_SUCCEEDED, pattern)
    assert dispatcher.work_queue.completed_count == 1
    assert dispatcher.work_queue.outstanding == 0

def test_install_queue_waits_for_request(dispatcher):
    entered = threading.Event()
    release = threading.Event()
    handle_job_succeeded = dispatcher.handle_job_succeeded

    def slow_handler(queue, worker, pattern):
        entered.set()
        release.wait(10)
        return handle_job_succeeded(queue, worker, pattern)

    dispatcher.handle_job_succeeded = slow_handler
    queue = WorkQueue(['a'])
    dispatcher.install_queue(queue)
    ready(dispatcher, 'W1')

    request = threading.Thread(target=report,
            args=(dispatcher, 'W1', protocol.JOB_SUCCEEDED, 'a'))
    request.start()
    assert entered.wait(10)
    swap = threading.Thread(target=dispatcher.install_queue, args=(None,))
    swap.start()
    swap.join(0.2)
    assert swap.is_alive()

    release.set()
    request.join(10)
    swap.join(10)
    assert not swap.is_alive()
    assert dispatcher.work_queue is None
    assert queue.completed_count == 1

def test_node_label():
    inventory = NodeInventory(['node-1'], {'10.0.0.5': 'node-1'})
    d = Dispatcher(inventory=inventory)
    try:
        assert d.node_label('10.0.0.5') == 'node-1 (10.0.0.5)'
        assert d.node_label('10.0.0.6') == '10.0.0.6'
    finally:
        d.close()


@pytest.fixture
def served():
    """A Dispatcher serving on a loopback port in a background thread."""
    d = Dispatcher(('127.0.0.1', 0), timeout=1)
    d.bind()
    errors = []

    def serve():
        try:
            d.serve_forever()
        except Exception as e:
            errors.append(e)

    t = threading.Thread(target=serve)
    t.daemon = True
    t.start()
    yield d
    d.shutdown()
    t.join(10)
    assert not t.is_alive()
    d.close()
    assert errors == []


def test_over_sockets(served):
    served.work_queue = WorkQueue(['in/part 0', 'in/part 1'])
    client = WorkerClient(('127.0.0.1', served.port))

    assert client.worker_ready() == 'in/part 0'
    assert client.worker_ready() == 'in/part 1'
    client.job_started('in/part 0')
    client.job_failed('in/part 0')
    assert client.worker_ready() == 'in/part 0'
    client.job_info('all good')
    client.job_succeeded('in/part 0')
    client.job_succeeded('in/part 1')
    assert client.worker_ready() is None

    # Requests are handled in order, so the reports were processed before
    # the last reply was sent.
    queue = served.work_queue
    assert queue.completed_count == 2
    assert queue.outstanding == 0

def test_unknown_message_is_closed_without_reply(served):
    served.work_queue = WorkQueue(['a'])
    client = WorkerClient(('127.0.0.1', served.port))
    assert client.request(b'HELLO', expect_reply=True) == b''
    assert client.worker_ready() == 'a'

def test_oversized_message_is_dropped(served):
    served.work_queue = WorkQueue(['a'])
    client = WorkerClient(('127.0.0.1', served.port))
    frame = b'JOB_INFO ' + b'x' * (protocol.MAX_FRAME_SIZE + 1)
    try:
        client.request(frame, expect_reply=True)
    except ConnectionIOError:
        # The dispatcher may close before everything was sent.
        pass
    assert client.worker_ready() == 'a'

def test_unfinished_message_is_dropped(served):
    served.work_queue = WorkQueue(['a'])
    address = ('127.0.0.1', served.port)
    # Neither peer half-closes: one sends a request, the other nothing.
    stuck = socket.create_connection(address)
    silent = socket.create_connection(address)
    try:
        stuck.sendall(protocol.encode(protocol.WORKER_READY))
        stuck.settimeout(10)
        assert stuck.recv(100) == b''

        client = WorkerClient(address, timeout=10)
        assert client.worker_ready() == 'a'
    finally:
        stuck.close()
        silent.close()
    assert served.work_queue.leases() == [('127.0.0.1', 'a')]

def test_address_in_use():
    first = Dispatcher(('127.0.0.1', 0))
    first.bind()
    try:
        second = Dispatcher(('127.0.0.1', first.port))
        try:
            with pytest.raises(ServerError):
                second.bind()
        finally:
            second.close()
    finally:
        first.close()

def test_close_once():
    d = Dispatcher(('127.0.0.1', 0))
    d.bind()
    d.close()
    d.close()
    d.shutdown()
    assert d.socket.fileno() == -1

# vim: et sw=4 sts=4
