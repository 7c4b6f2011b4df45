from clip_media.media.transcoder import ImageTranscoder, compute_target_size, pick_output_format

__all__ = [
    "ImageTranscoder",
    "compute_target_size",
    "pick_output_format",
]
