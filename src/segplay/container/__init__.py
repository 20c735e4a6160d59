from .ogg import AudioFrame, OggFormatError, OggPacketStream, OpusBlueprint

__all__ = ["AudioFrame", "OggFormatError", "OggPacketStream", "OpusBlueprint"]
