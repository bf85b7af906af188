import re
from typing import Dict, List, NamedTuple, Tuple

import structlog
from diff_match_patch import diff_match_patch

logger = structlog.get_logger(__name__)

EQUAL = diff_match_patch.DIFF_EQUAL
INSERT = diff_match_patch.DIFF_INSERT
DELETE = diff_match_patch.DIFF_DELETE


class TextRun(NamedTuple):
    """One run of a text diff: `op` is EQUAL, INSERT or DELETE."""

    op: int
    text: str


def diff_text(old_text: str, new_text: str, word_level: bool = False) -> List[TextRun]:
    """
    Compares two strings and returns the ordered runs turning one into the other.
    Character mode reports the raw minimal diff. Word mode diffs whole tokens
    (words, whitespace, punctuation) and applies semantic cleanup, so changed
    words are replaced whole instead of letter by letter.
    """
    dmp = diff_match_patch()
    # No time limit: the same inputs must always give the same runs.
    dmp.Diff_Timeout = 0

    if not word_level:
        diffs = dmp.diff_main(old_text, new_text, False)
    else:
        # 1. Word-Level Tokenization & Encoding
        chars1, chars2, token_array = _words_to_chars(old_text, new_text)

        # 2. Compute Diff on the Encoded Strings
        diffs = dmp.diff_main(chars1, chars2, False)

        # 3. Semantic Cleanup
        dmp.diff_cleanupSemantic(diffs)

        # 4. Decode back to Text
        dmp.diff_charsToLines(diffs, token_array)

    runs = [TextRun(op, text) for op, text in diffs if text]
    logger.debug(f"Text diff produced {len(runs)} runs", word_level=word_level)
    return runs


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits text into words/tokens and encodes them as unique Unicode characters.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}
    split_pattern = r"(\s+|\w+|[^\w\s])"

    def encode_text(text: str) -> str:
        tokens = [t for t in re.split(split_pattern, text) if t]
        encoded_chars = []
        for token in tokens:
            if token in token_hash:
                encoded_chars.append(chr(token_hash[token]))
            else:
                code = len(token_array)
                token_hash[token] = code
                token_array.append(token)
                encoded_chars.append(chr(code))
        return "".join(encoded_chars)

    chars1 = encode_text(text1)
    chars2 = encode_text(text2)
    return chars1, chars2, token_array
