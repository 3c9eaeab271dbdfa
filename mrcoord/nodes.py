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

"""Node inventory: the machines workers may be started on.

A hosts file has one node per line.  The first word is the name used to
reach the node (passed to ssh or gcloud); any further words are network
addresses that the node connects from.  Blank lines and anything after a
'#' are ignored.  For example:

    # name          addresses
    mr-node-1       10.138.0.2  35.235.1.17
    mr-node-2       10.138.0.3
"""

import random

from .errors import ConfigError

from logging import getLogger
logger = getLogger('mrcoord')


class NodeInventory(object):
    """A fixed list of node names and a map from address to node label.

    Attributes:
        nodes: list of node names, in file order
        labels: dict mapping a network address to a node name
    """
    def __init__(self, nodes, labels=None):
        self.nodes = list(nodes)
        self.labels = dict(labels or {})
        if not self.nodes:
            raise ConfigError('The node inventory is empty.')

    @classmethod
    def from_file(cls, path):
        """Read a hosts file (see the module docstring for the format)."""
        try:
            with open(path) as f:
                lines = f.readlines()
        except (IOError, OSError) as e:
            raise ConfigError('Cannot read hosts file %s: %s' % (path, e))
        return cls.from_lines(lines)

    @classmethod
    def from_lines(cls, lines):
        nodes = []
        labels = {}
        for line in lines:
            words = line.split('#', 1)[0].split()
            if not words:
                continue
            name = words[0]
            nodes.append(name)
            for address in words[1:]:
                labels[address] = name
        logger.debug('Loaded %s nodes from hosts file.' % len(nodes))
        return cls(nodes, labels)

    @classmethod
    def from_names(cls, names):
        """Build an inventory from a comma-separated list of node names."""
        nodes = [name.strip() for name in names.split(',') if name.strip()]
        return cls(nodes)

    def label(self, address):
        """Human-readable name of the node at address (or the address)."""
        return self.labels.get(address, address)

    def __len__(self):
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)


class RandomChoice(object):
    """Choose each node uniformly at random, independently per launch."""

    def __init__(self, seed=None):
        self.random = random.Random(seed)

    def choose(self, nodes):
        return self.random.choice(nodes)


class RoundRobin(object):
    """Choose nodes in inventory order, wrapping around.

    Deterministic, which makes it useful for tests and for small clusters
    where every node should get a worker.
    """
    def __init__(self):
        self._next = 0

    def choose(self, nodes):
        node = nodes[self._next % len(nodes)]
        self._next += 1
        return node

# vim: et sw=4 sts=4
