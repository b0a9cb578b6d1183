"""Named shared-memory channels for passing messages between containers."""

import struct
from dataclasses import dataclass
from enum import IntEnum
from multiprocessing import shared_memory

from .utils import ContainerError, log_message

MAX_IPC_CHANNELS = 32
MAX_MESSAGE_SIZE = 4096
_HEADER = struct.Struct("=I")
_SEGMENT_SIZE = _HEADER.size + MAX_MESSAGE_SIZE


class ChannelType(IntEnum):
    SHARED_MEMORY = 1
    SEMAPHORE = 2
    MESSAGE_QUEUE = 3


@dataclass
class _Channel:
    name: str
    type: ChannelType
    segment: shared_memory.SharedMemory


class IpcRegistry:
    """A bounded set of named IPC channels owned by this process."""

    def __init__(self, max_channels=MAX_IPC_CHANNELS):
        self.max_channels = max_channels
        self._channels = {}
        log_message("IPC system initialized")

    def __len__(self):
        return len(self._channels)

    def __contains__(self, channel_name):
        return channel_name in self._channels

    def _find(self, channel_name):
        try:
            return self._channels[channel_name]
        except KeyError:
            raise ContainerError(f"IPC channel {channel_name} not found") from None

    def _shared(self, channel_name):
        channel = self._find(channel_name)
        if channel.type is not ChannelType.SHARED_MEMORY:
            raise ContainerError(f"channel {channel_name} is not shared memory")
        return channel

    def cleanup(self):
        """Release every channel and forget them all."""
        for channel in self._channels.values():
            channel.segment.close()
            try:
                channel.segment.unlink()
            except FileNotFoundError:
                pass
        self._channels.clear()
        log_message("IPC resources cleaned up")

    def create_channel(self, config, channel_name):
        """Create a shared-memory channel named *channel_name* for *config*."""
        if len(self._channels) >= self.max_channels:
            raise ContainerError("maximum number of IPC channels reached")
        if channel_name in self._channels:
            raise ContainerError(f"IPC channel {channel_name} already exists")
        try:
            segment = shared_memory.SharedMemory(create=True, size=_SEGMENT_SIZE)
        except OSError as exc:
            raise ContainerError(f"cannot create shared memory: {exc}") from exc
        segment.buf[: _SEGMENT_SIZE] = bytes(_SEGMENT_SIZE)
        self._channels[channel_name] = _Channel(channel_name, ChannelType.SHARED_MEMORY, segment)
        log_message("IPC channel %s created for container %s", channel_name, config.id)

    def connect_containers(self, container_id1, container_id2, channel_name):
        """Connect two containers through an existing channel."""
        self._find(channel_name)
        log_message(
            "containers %s and %s connected through channel %s",
            container_id1,
            container_id2,
            channel_name,
        )

    def send_message(self, channel_name, data):
        """Store *data* (at most 4096 bytes) in the channel; return bytes sent."""
        channel = self._shared(channel_name)
        payload = bytes(data[:MAX_MESSAGE_SIZE])
        buf = channel.segment.buf
        _HEADER.pack_into(buf, 0, len(payload))
        buf[_HEADER.size : _HEADER.size + len(payload)] = payload
        log_message("%d bytes sent through channel %s", len(payload), channel_name)
        return len(payload)

    def receive_message(self, channel_name, buffer_size):
        """Return the message stored in the channel if it fits in *buffer_size*."""
        channel = self._shared(channel_name)
        buf = channel.segment.buf
        (size,) = _HEADER.unpack_from(buf, 0)
        if size > buffer_size:
            raise ContainerError(f"buffer smaller than data ({size} > {buffer_size})")
        message = bytes(buf[_HEADER.size : _HEADER.size + size])
        log_message("%d bytes received through channel %s", size, channel_name)
        return message

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False