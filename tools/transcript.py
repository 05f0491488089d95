from typing import List, Dict, Any, Optional, Iterator

from graph.state import Message

class Transcript:
    """Append-only chat history for a session."""

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: List[Message] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def stream_update(self, content: str) -> Message:
        """Replace the content of the trailing assistant message with a longer partial."""
        last = self.last
        if last is None or last.role != "assistant":
            raise ValueError("Streaming updates only apply to the last assistant message")
        last.content = content
        return last

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    @classmethod
    def from_list(cls, items: List[Dict[str, Any]]) -> "Transcript":
        return cls([Message.from_dict(item) for item in items])
