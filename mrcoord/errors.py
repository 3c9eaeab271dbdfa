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

"""Exceptions raised by the coordinator and its workers.

Infrastructure errors (sockets, process launch) are fatal and end the run.
Task failures are never exceptions; they are reported over the wire and
requeued.
"""

ERR_STARTING_SERVER = 'error starting server'
ERR_ACCEPTING = 'could not accept connection'
ERR_READING_MESSAGE = 'error reading message'
ERR_WRITING_MESSAGE = 'error writing message'
ERR_CONNECTING = 'could not connect'
ERR_EXECUTING_CMD = 'error executing command'
ERR_CONFIG = 'bad configuration'
ERR_PROTOCOL = 'unexpected message'


class MapReduceError(Exception):
    """Base class for all mrcoord errors.

    Attributes:
        code: short description of what was being attempted
        detail: the underlying error or message
    """
    code = None

    def __init__(self, detail, code=None):
        Exception.__init__(self, detail)
        if code is not None:
            self.code = code
        self.detail = detail

    def __str__(self):
        if self.code:
            return '%s: %s' % (self.code, self.detail)
        return str(self.detail)


class InfrastructureError(MapReduceError):
    """A failure that aborts the whole run."""


class ServerError(InfrastructureError):
    code = ERR_STARTING_SERVER


class ConnectionIOError(InfrastructureError):
    code = ERR_READING_MESSAGE


class LaunchError(InfrastructureError):
    code = ERR_EXECUTING_CMD


class ConfigError(MapReduceError):
    code = ERR_CONFIG


class ProtocolError(MapReduceError):
    code = ERR_PROTOCOL

# vim: et sw=4 sts=4
