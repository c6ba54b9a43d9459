"""
JavaScript p,a,c,k,e,d unpacker.

Embed hosts in the MixDrop family hide their player config behind
Dean Edwards' JS packer:
  eval(function(p,a,c,k,e,d){...}('<payload>',<radix>,<count>,'<k1|k2|...>'.split('|'),0,{}))

This module unpacks those to plain JS so we can regex out stream URLs.
The substitution mirrors the packer's own decoder loop:
  while(c--) if(k[c]) p = p.replace(new RegExp('\\b'+e(c)+'\\b','g'), k[c])
"""
from __future__ import annotations
import re

from .errors import DeobfuscationError

_PACKED_RE = re.compile(
    r"eval\(function\(p,a,c,k,e,[dr]\)\{.*?\}\(\s*'(.*?)'\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*'(.*?)'\.split\('\|'\)",
    re.DOTALL,
)

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base_encode(val: int, radix: int) -> str:
    """
    The packer's `e(c)`:
      (c<a ? '' : e(parseInt(c/a))) + ((c=c%a) > 35 ? String.fromCharCode(c+29) : c.toString(36))
    Digits 36+ land on 'A'..'Z' and then run on past 'Z' for radix > 62.
    """
    head = "" if val < radix else _base_encode(val // radix, radix)
    digit = val % radix
    tail = chr(digit + 29) if digit > 35 else _DIGITS[digit]
    return head + tail


def detect(text: str) -> bool:
    """Check if text contains packed JS."""
    return bool(_PACKED_RE.search(text))


def unpack(text: str) -> str:
    """Unpack packed JS. Raises DeobfuscationError when no packed call is present."""
    match = _PACKED_RE.search(text)
    if not match:
        raise DeobfuscationError("packed JS not found")

    payload, radix_s, count_s, symtab_raw = match.groups()
    radix = int(radix_s)
    count = int(count_s)
    if radix < 2:
        raise DeobfuscationError(f"unsupported radix {radix}")

    symtab = symtab_raw.split("|")
    # Pad symtab to count entries
    while len(symtab) < count:
        symtab.append("")

    payload = payload.replace("\\\\", "\\").replace("\\'", "'")

    for idx in range(count - 1, -1, -1):
        word = symtab[idx]
        if not word:
            continue
        token = re.compile(r"\b" + re.escape(_base_encode(idx, radix)) + r"\b", re.ASCII)
        payload = token.sub(lambda _m, w=word: w, payload)
    return payload
