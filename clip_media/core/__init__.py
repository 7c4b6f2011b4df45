"""
Core media layer: request planning, worker protocol, dispatcher and server.

Import concrete modules directly (e.g. clip_media.core.context.MediaContext);
this package stays import-light so the media subpackage can depend on it.
"""
