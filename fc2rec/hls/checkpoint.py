from pydantic import BaseModel

from .manifest import SegmentRef


class Checkpoint(BaseModel):
    last_fragment_name: str = ""
    last_fragment_sequence: int | None = None
    last_fragment_time: int = 0
    use_time_based_sorting: bool = True

    def advance(self, ref: SegmentRef) -> "Checkpoint":
        return self.model_copy(
            update={
                "last_fragment_name": ref.name,
                "last_fragment_sequence": ref.sequence,
                "last_fragment_time": ref.time if ref.time is not None else self.last_fragment_time,
            }
        )

    def is_after_by_name(self, ref: SegmentRef) -> bool:
        if self.last_fragment_name == "":
            return True
        if ref.sequence is not None and self.last_fragment_sequence is not None:
            return ref.sequence > self.last_fragment_sequence
        return ref.name > self.last_fragment_name

    def is_after_by_time(self, ref: SegmentRef) -> bool:
        time = ref.time if ref.time is not None else self.last_fragment_time
        if time != self.last_fragment_time:
            return time > self.last_fragment_time
        return self.is_after_by_name(ref)


def new_segments(refs: list[SegmentRef], checkpoint: Checkpoint) -> list[SegmentRef]:
    """
    Select the segments of a manifest that come after the checkpoint.

    With time-based sorting a segment is new when its time, then its name,
    is greater than the checkpoint's. Otherwise the manifest is scanned for
    the checkpoint's name and everything after it is new; when the name is
    absent every segment is new.
    """
    if checkpoint.use_time_based_sorting:
        result = []
        current = checkpoint
        for ref in refs:
            if current.is_after_by_time(ref):
                result.append(ref)
                current = current.advance(ref)
        return result

    for idx, ref in enumerate(refs):
        if ref.name == checkpoint.last_fragment_name:
            return refs[idx + 1:]
    return list(refs)
