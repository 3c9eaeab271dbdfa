#!/usr/bin/env python
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

import re

from setuptools import setup


def get_version(filename):
    # This regex isn't very robust, but it should work for most files.
    regex = re.compile(r'''__version__.*=.*['"](\d+\.\d+(?:\.\d+)?)['"]''')
    with open(filename) as f:
        for line in f:
            match = regex.search(line)
            if match:
                return match.group(1)


setup(name="mrcoord",
    version=get_version('mrcoord/version.py'),
    description="Coordinator that runs a MapReduce job on remote worker"
        " processes",
    license="Apache License, Version 2.0",
    packages=['mrcoord'],
    python_requires='>=3.6',
    extras_require={'test': ['pytest']},
    entry_points={
        'console_scripts': [
            'mrcoord = mrcoord.main:main',
            'mrcoord-worker = mrcoord.main:worker_main',
        ],
    },
    classifiers=['Development Status :: 4 - Beta',
                'Operating System :: POSIX :: Linux',
                'Environment :: Console',
                'Intended Audience :: Science/Research',
                'License :: OSI Approved :: Apache Software License',
                'Natural Language :: English',
                'Programming Language :: Python',
                'Programming Language :: Python :: 3',
                'Topic :: System :: Distributed Computing'],
    )
