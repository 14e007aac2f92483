"""
Audio transcoding package.

Converts the audio stream of a container file into a different
codec/container pair using PyAV (Python bindings for FFmpeg):

- audio_target: Fixed encode target (codec, rate, layout, bit rate)
- container_reader: PyAV-based demuxer and audio stream discovery
- audio_codec: Decoder/encoder wrappers with an explicit drain state machine
- resampler: Sample format / rate / layout conversion
- sample_fifo: Elastic sample queue reconciling decoder and encoder frame sizes
- container_writer: PyAV-based muxer for the single output audio stream
- transcode_pipeline: The demux -> decode -> resample -> encode -> mux loop
- errors: Exception hierarchy and codec drain signals
"""
