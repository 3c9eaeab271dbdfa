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

"""Wire protocol between the coordinator and its workers.

Each connection carries exactly one request and at most one response.  A
frame is a single line of text: either a bare keyword or a keyword
followed by a space and a payload.  Everything after the first space is
payload, so file patterns may contain spaces.  There is no length prefix;
the sender half-closes its side of the connection after writing, and the
receiver reads until EOF.
"""

import collections
import socket

from .errors import (ConnectionIOError, ERR_READING_MESSAGE,
        ERR_WRITING_MESSAGE)

ENCODING = 'utf-8'
# File names that are not valid UTF-8 reach us from os.listdir as lone
# surrogates; this handler turns them back into the original bytes.
ENCODING_ERRORS = 'surrogateescape'
MAX_FRAME_SIZE = 64 * 1024
READ_SIZE = 4096

WORKER_READY = 'WORKER_READY'
JOB_STARTED = 'JOB_STARTED'
JOB_INFO = 'JOB_INFO'
JOB_SUCCEEDED = 'JOB_SUCCEEDED'
JOB_FAILED = 'JOB_FAILED'
SERVER_DONE = 'SERVER_DONE'
UNKNOWN = 'UNKNOWN'

KEYWORDS = frozenset([WORKER_READY, JOB_STARTED, JOB_INFO, JOB_SUCCEEDED,
    JOB_FAILED, SERVER_DONE])

# Messages that are meaningless without a payload.
NEEDS_PAYLOAD = frozenset([JOB_SUCCEEDED, JOB_FAILED])


class Message(collections.namedtuple('Message', 'kind payload')):
    """A decoded frame.

    The payload is None for bare keywords.  For UNKNOWN messages, the
    payload is the complete text of the frame.
    """
    __slots__ = ()

    def __str__(self):
        if self.payload is None:
            return self.kind
        return '%s %s' % (self.kind, self.payload)


def encode(kind, payload=None):
    """Serialize a message kind and optional payload into a frame.

    >>> encode(WORKER_READY)
    b'WORKER_READY'
    >>> encode(JOB_FAILED, 'in/part 1.txt')
    b'JOB_FAILED in/part 1.txt'
    >>>
    """
    if kind not in KEYWORDS:
        raise ValueError('Cannot encode message kind %r' % kind)
    if payload is None:
        text = kind
    else:
        text = '%s %s' % (kind, payload)
    return text.encode(ENCODING, ENCODING_ERRORS)


def decode(frame):
    """Parse a frame into a Message.

    Decoding never fails: a frame whose leading token is not a keyword
    becomes an UNKNOWN message.

    >>> decode(b'JOB_SUCCEEDED out/*.0003.mapped')
    Message(kind='JOB_SUCCEEDED', payload='out/*.0003.mapped')
    >>> decode(b'HELLO there')
    Message(kind='UNKNOWN', payload='HELLO there')
    >>>
    """
    text = _frame_text(frame)
    keyword, sep, payload = text.partition(' ')
    if keyword not in KEYWORDS:
        return Message(UNKNOWN, text)
    if not sep:
        payload = None
    return Message(keyword, payload)


def encode_reply(pattern):
    """Frame the coordinator's answer to WORKER_READY.

    A pattern is sent bare; None means there is no work left.
    """
    if pattern is None:
        return encode(SERVER_DONE)
    return pattern.encode(ENCODING, ENCODING_ERRORS)


def decode_reply(frame):
    """Parse the coordinator's answer to WORKER_READY.

    Returns the pattern, or None if the coordinator sent SERVER_DONE.
    """
    text = _frame_text(frame)
    if text == SERVER_DONE:
        return None
    return text


def _frame_text(frame):
    if isinstance(frame, bytes):
        frame = frame.decode(ENCODING, ENCODING_ERRORS)
    # A single line terminator is framing, not payload.
    if frame.endswith('\r\n'):
        frame = frame[:-2]
    elif frame.endswith('\n'):
        frame = frame[:-1]
    return frame


class FrameTooLarge(Exception):
    """A peer sent more than MAX_FRAME_SIZE bytes."""


class FrameTimeout(ConnectionIOError):
    """A peer kept its side open without finishing its frame in time."""


def read_frame(sock, limit=MAX_FRAME_SIZE):
    """Read one complete frame: everything until the peer closes its side.

    Raises FrameTooLarge if more than `limit` bytes arrive, FrameTimeout if
    the socket timeout expires before EOF, and ConnectionIOError if the
    socket fails mid-frame.
    """
    chunks = []
    size = 0
    while True:
        try:
            data = sock.recv(READ_SIZE)
        except socket.timeout as e:
            raise FrameTimeout(e)
        except socket.error as e:
            raise ConnectionIOError(e, ERR_READING_MESSAGE)
        if not data:
            break
        size += len(data)
        if size > limit:
            raise FrameTooLarge('frame exceeds %s bytes' % limit)
        chunks.append(data)
    return b''.join(chunks)


def write_frame(sock, frame, half_close=False):
    """Write one frame.

    Requesters set `half_close` so that the peer sees EOF and knows the
    frame is complete while the response can still come back.
    """
    try:
        sock.sendall(frame)
        if half_close:
            sock.shutdown(socket.SHUT_WR)
    except (socket.error, socket.timeout) as e:
        raise ConnectionIOError(e, ERR_WRITING_MESSAGE)

# vim: et sw=4 sts=4
