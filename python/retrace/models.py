from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SimplifyMode(str, Enum):
    MERGE = "merge"
    PATTERNS = "patterns"
    OFF = "off"


class RecreateOptions(BaseModel):
    """
    Options for a single reconstruction call.
    Plain dicts are accepted wherever options are: RecreateOptions.model_validate({...}).
    """

    model_config = ConfigDict(extra="forbid")

    separate_mark_phase: bool = Field(
        True,
        description=(
            "Diff content with marks stripped, then reconcile marks in a second phase. "
            "When off, mark changes are diffed together with content."
        ),
    )

    word_diffs: bool = Field(
        False,
        description="Diff changed text word by word instead of character by character.",
    )

    simplify: SimplifyMode = Field(
        SimplifyMode.MERGE,
        description=(
            "'merge' fuses adjacent compatible steps. 'patterns' replaces merging: it skips it "
            "and rebuilds join/sink/split operations from insert+delete pairs. 'off' returns the raw steps."
        ),
    )
