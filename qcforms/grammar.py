"""qcforms/grammar.py – PEG grammar of the surface S-expression language.

The grammar is deliberately tiny: everything a property author writes is a
symbol, a ``:keyword``, a number, a string or a bracketed list of those.
Which list shapes mean what is decided later by the dispatcher, not here.
"""

from __future__ import annotations

SURFACE_GRAMMAR = r'''
    forms       = _ data

    data        = (datum _)*
    datum       = list / vector / string / number / keyword / symbol

    list        = "(" _ data ")"
    vector      = "[" _ data "]"

    string      = ~r'"(?:[^"\\\n]|\\.)*"'
    number      = ~r'[-+]?(?:\d+\.\d+(?:[eE][-+]?\d+)?|\d+[eE][-+]?\d+|\d+)(?=[\s()\[\];]|$)'
    keyword     = ~r':[^\s()\[\]";:]+'
    symbol      = ~r'[^\s()\[\]";:0-9][^\s()\[\]";]*'

    _           = (whitespace / comment)*
    whitespace  = ~r'\s+'
    comment     = ~r';[^\n]*'
'''
