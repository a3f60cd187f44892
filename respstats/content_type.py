"""Content-Type header canonicalization for response statistics."""


def canonicalize_content_type(raw: str) -> str:
    """
    Reduce a raw Content-Type header value to its stats key.

    The media type is kept as written. Of the parameters only ``charset`` is
    retained, always placed straight after the media type. Anything else,
    including malformed segments without ``=``, is dropped.

    >>> canonicalize_content_type("multipart/byteranges; boundary=X; charset=UTF-8")
    'multipart/byteranges; charset=UTF-8'
    """
    segments = [segment.strip() for segment in raw.split(";")]
    media_type = segments[0]
    if not media_type:
        return ""

    for segment in segments[1:]:
        name, sep, value = segment.partition("=")
        if not sep or name.strip().lower() != "charset":
            continue
        value = value.strip()
        if value:
            return f"{media_type}; charset={value}"

    return media_type
