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

"""param.py: objects with inheritable keyword parameters

Anything that subclasses ParamObj will be an object for which _params is a
special dictionary of Param objects.  The parameters of a ParamObj class
can be turned into command-line options with OptionParser.add_param_object
and read back with from_options.
"""

import optparse


class ParamError(Exception):
    def __init__(self, clsname, paramname):
        self.clsname = clsname
        self.paramname = paramname

    def __str__(self):
        return 'Class %s has no parameter "%s"' % (self.clsname, self.paramname)


# Subclasses need to be able to override inherited values with None, so we
# need a separate marker for "not given".
NotSpecified = object()


class Param(object):
    """A parameter with a default value, a type, and documentation.

    Attributes:
        default: The default value to be used.
        type: The optparse-style type used when interpreting command-line
                arguments ('string', 'int', ...).  A 'bool' Param defaults
                to False, and giving the command-line option sets it True.
        doc: Help text.
        shortopt: A short form of the option.  Use sparingly.
    """
    def __init__(self, default=NotSpecified, type=NotSpecified, doc=NotSpecified,
            shortopt=NotSpecified):
        self.default = default
        self.doc = doc
        self.type = type
        self.shortopt = shortopt

    def check(self):
        if self.type == 'bool':
            if self.default is None:
                self.default = False
            assert self.default is False

    def inherit(self, base):
        """Fill in anything NotSpecified from a base class's Param."""
        for attr in ('doc', 'type', 'default', 'shortopt'):
            if getattr(self, attr) is NotSpecified:
                setattr(self, attr, getattr(base, attr))

    def copy(self):
        return Param(self.default, self.type, self.doc, self.shortopt)

    def set_defaults(self):
        if self.doc is NotSpecified:
            self.doc = None
        if self.type is NotSpecified:
            self.type = 'string'
        if self.default is NotSpecified:
            self.default = None
        if self.shortopt is NotSpecified:
            self.shortopt = None


class _ParamMeta(type):
    """Metaclass that merges the _params of a class and its bases.

    Each object of the class gets an attribute for every Param, set to the
    Param's default unless overridden by keyword in __init__.  Classes
    that define their own __init__ must call ParamObj.__init__.
    """

    def __new__(cls, classname, bases, classdict):
        params = classdict.setdefault('_params', {})

        for base in bases:
            baseparams = getattr(base, '_params', None)
            if baseparams is None:
                continue
            for name, baseparam in baseparams.items():
                if name in params:
                    params[name].inherit(baseparam)
                else:
                    params[name] = baseparam.copy()

        for param in params.values():
            param.set_defaults()
            param.check()

        docs = sorted('%s: %s (default=%s)' % (name, param.doc, param.default)
                for name, param in params.items())
        doc = classdict.get('__doc__') or '%s -- Class using Params' % classname
        classdict['__doc__'] = doc + '\n    '.join(
                ['\n%s Parameters:' % classname] + docs)

        return type.__new__(cls, classname, bases, classdict)


class ParamObj(object, metaclass=_ParamMeta):
    """An object whose attributes are declared by a "_params" dictionary.

    Example:

    >>> class Rabbit(ParamObj):
    ...     _params = dict(weight=Param(default=42, type='int'))
    >>> Rabbit().weight
    42
    >>> Rabbit(weight=12).weight
    12
    >>>
    """
    def __init__(self, **kwds):
        for key in kwds:
            if key not in self._params:
                raise ParamError(self.__class__.__name__, key)
        for name, param in self._params.items():
            setattr(self, name, kwds.get(name, param.default))


def from_options(cls, opts, prefix=''):
    """Instantiate a ParamObj class from an optparse.Values object.

    The value for param `abc` is read from `opts.<prefix>__abc` (or
    `opts.abc` with no prefix), as written by add_param_object.
    """
    kwds = {}
    for name in cls._params:
        dest = _dest(name, prefix)
        if hasattr(opts, dest):
            kwds[name] = getattr(opts, dest)
    return cls(**kwds)


def _dest(name, prefix):
    if prefix:
        return '%s__%s' % (prefix, name)
    return name


class OptionParser(optparse.OptionParser):
    """optparse.OptionParser that knows how to add the params of a ParamObj.
    """

    def add_param_object(self, param_obj, prefix=''):
        """Add an option group for the parameters in a ParamObj class.

        The given prefix is prepended to each long option (so the param
        `map_only` with prefix 'mrc' becomes --mrc-map-only).  Returns the
        OptionGroup.
        """
        title = '%s (%s)' % (param_obj.__name__, prefix)
        subgroup = optparse.OptionGroup(self, title)
        self.add_option_group(subgroup)
        for attr, param in sorted(param_obj._params.items()):
            name = attr.replace('_', '-')
            if prefix:
                option = '--%s-%s' % (prefix, name)
            else:
                option = '--%s' % name

            opts = [option]
            if param.shortopt:
                opts.append(param.shortopt)
            kwds = {'help': '%s (default=%s)' % (param.doc, param.default),
                    'dest': _dest(attr, prefix), 'default': param.default}
            if param.type == 'bool':
                kwds['action'] = 'store_true'
            else:
                kwds['action'] = 'store'
                kwds['metavar'] = attr.upper()
                kwds['type'] = param.type
            subgroup.add_option(*opts, **kwds)
        return subgroup

__all__ = ['ParamObj', 'Param', 'OptionParser', 'from_options']

# vim: et sw=4 sts=4
