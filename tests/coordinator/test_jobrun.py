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
import threading

import pytest

from mrcoord.coordinator import (JobConfig, JobRun, MAP, REDUCE,
        map_patterns, padded_number, reduce_patterns)
from mrcoord.errors import ConfigError, LaunchError
from mrcoord.nodes import RoundRobin
from mrcoord.worker import Worker, WorkerClient

MASTER_OPTION = '--mrc-master='


class ThreadExecutor(object):
    """Runs each worker command as a Worker in a thread of this process.

    The worker's executable is replaced by the `call` function.
    """
    def __init__(self, call):
        self.call = call
        self.commands = []

    def start(self, command):
        self.commands.append(command)
        argv = list(command.argv)
        while not argv[0].startswith(MASTER_OPTION):
            argv.pop(0)
        address = argv[0][len(MASTER_OPTION):]
        client = WorkerClient(address, timeout=10, retry_delay=0.1)
        worker = Worker(client, argv[1], argv[2:], call=self.call)

        result = []
        t = threading.Thread(target=lambda: result.append(worker.run()))
        t.daemon = True
        t.start()
        return t, result

    def wait(self, handle):
        t, result = handle
        t.join()
        return result[0] if result else -1


class FlakyCall(object):
    """Records each run; patterns in `fail_once` fail the first time."""
    def __init__(self, fail_once=()):
        self.fail_once = set(fail_once)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, argv):
        with self._lock:
            self.calls.append(argv)
            if argv[1] in self.fail_once:
                self.fail_once.remove(argv[1])
                return 1
        return 0

    def patterns(self, exe):
        return [argv[1] for argv in self.calls if argv[0] == exe]


@pytest.fixture
def job_dirs(tmpdir):
    input_dir = tmpdir.mkdir('input')
    for name in ('shard-a', 'shard-b', 'shard-c'):
        input_dir.join(name).write(name + '\n')
    input_dir.join('.hidden').write('skip me\n')
    input_dir.mkdir('subdir')
    return tmpdir


def make_config(tmpdir, **kwds):
    config = JobConfig(port=0, master='127.0.0.1', nodes='n1,n2',
            input_dir=tmpdir.join('input').strpath,
            intermediate_dir=tmpdir.join('inter').strpath,
            output_dir=tmpdir.join('output').strpath,
            mapper_exe='wc-map', reducer_exe='wc-reduce',
            mappers=2, reducers=3)
    for key, value in kwds.items():
        setattr(config, key, value)
    return config


def test_map_patterns(job_dirs):
    input_dir = job_dirs.join('input').strpath
    assert map_patterns(input_dir) == [os.path.join(input_dir, name)
            for name in ('shard-a', 'shard-b', 'shard-c')]

def test_reduce_patterns():
    patterns = reduce_patterns('/inter', 2, 3)
    assert len(patterns) == 6
    assert patterns[0] == '/inter/*.0000.mapped'
    assert patterns[5] == '/inter/*.0005.mapped'
    assert padded_number(12) == '0012'

def test_full_job(job_dirs):
    config = make_config(job_dirs)
    input_dir = config.input_dir
    flaky = os.path.join(input_dir, 'shard-b')
    call = FlakyCall(fail_once=[flaky])
    executor = ThreadExecutor(call)

    job = JobRun(config, executor, chooser=RoundRobin())
    reports = job.run()

    assert [r.phase for r in reports] == [MAP, REDUCE]
    map_report, reduce_report = reports
    assert map_report.queue.completed_count == 3
    assert map_report.queue.is_drained()
    assert map_report.queue.outstanding == 0
    assert reduce_report.queue.completed_count == 6
    assert sorted(map_report.exit_statuses) == [0, 0]
    assert sorted(reduce_report.exit_statuses) == [0, 0, 0]

    # The failed shard ran twice; every other unit ran exactly once.
    mapped = call.patterns('wc-map')
    assert sorted(mapped) == sorted(map_patterns(input_dir) + [flaky])
    reduced = call.patterns('wc-reduce')
    assert sorted(reduced) == reduce_patterns(config.intermediate_dir, 2, 3)

    for argv in call.calls:
        if argv[0] == 'wc-map':
            assert argv[2:] == [config.intermediate_dir, '6']
        else:
            assert argv[2:] == [config.output_dir]

    assert len(executor.commands) == 5
    assert job.dispatcher.work_queue is None
    assert job.dispatcher._closed

def test_map_only(job_dirs):
    config = make_config(job_dirs, map_only=True)
    call = FlakyCall()
    job = JobRun(config, ThreadExecutor(call))
    reports = job.run()

    assert [r.phase for r in reports] == [MAP]
    assert call.patterns('wc-reduce') == []

def test_launch_failure(job_dirs):
    class BrokenExecutor(object):
        def start(self, command):
            raise LaunchError('ssh: connect to host %s: timed out'
                    % command.node)

        def wait(self, handle):
            return 0

    job = JobRun(make_config(job_dirs), BrokenExecutor())
    with pytest.raises(LaunchError):
        job.run()
    assert job.reports == []
    assert job.dispatcher._closed

def test_worker_argv(job_dirs):
    config = make_config(job_dirs, master='mr-master:9000', sudo=True,
            mr='/usr/local/bin/mr')
    job = JobRun(config, ThreadExecutor(FlakyCall()))
    try:
        assert job.mapper_argv('n1') == ['sudo', '/usr/local/bin/mr',
                '--mrc-master=mr-master:9000', 'wc-map',
                config.intermediate_dir, '6']
        assert job.reducer_argv('n1') == ['sudo', '/usr/local/bin/mr',
                '--mrc-master=mr-master:9000', 'wc-reduce',
                config.output_dir]
    finally:
        job.dispatcher.close()

def test_validate(job_dirs):
    make_config(job_dirs).validate()

    bad = [dict(mappers=0), dict(reducers=0),
            dict(input_dir=job_dirs.join('missing').strpath),
            dict(mapper_exe=None), dict(reducer_exe=None),
            dict(launcher='telnet'), dict(nodes=None), dict(read_timeout=-1)]
    for kwds in bad:
        with pytest.raises(ConfigError):
            make_config(job_dirs, **kwds).validate()

    # Map-only jobs need no reducer.
    make_config(job_dirs, map_only=True, reducer_exe=None,
            output_dir=None).validate()

def test_read_timeout(job_dirs):
    job = JobRun(make_config(job_dirs), ThreadExecutor(FlakyCall()))
    job.dispatcher.close()
    assert job.dispatcher.timeout == 30

    config = make_config(job_dirs, read_timeout=0)
    job = JobRun(config, ThreadExecutor(FlakyCall()))
    job.dispatcher.close()
    assert job.dispatcher.timeout is None

def test_inventory_from_hosts(job_dirs):
    hosts = job_dirs.join('hosts')
    hosts.write('mr-node-1 10.0.0.1\nmr-node-2 10.0.0.2\n')
    config = make_config(job_dirs, hosts=hosts.strpath, nodes=None)
    inventory = config.inventory()
    assert inventory.nodes == ['mr-node-1', 'mr-node-2']

# vim: et sw=4 sts=4
