from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from oms_audio.transcoder.audio_target import AudioTarget


class Settings(BaseSettings):
    log_level: str = "INFO"  # The logging level to use.
    transcode_output_codec: str = "libopus"  # Encoder used for every transcode job.
    transcode_output_format: Optional[str] = Field(
        None, description="Output container format. Guessed from the output file extension when unset."
    )
    transcode_output_sample_rate: int = 48000  # Output sample rate in Hz.
    transcode_output_channels: int = 2  # Output channel count.
    transcode_output_bit_rate: int = 96000  # Target encoder bit rate in bit/s.
    transcode_default_frame_size: int = 1024  # Chunk length used when the encoder accepts any frame size.
    transcode_skip_invalid_packets: bool = False  # Skip packets the decoder rejects instead of failing the job.
    transcode_max_workers: int = 2  # Concurrent jobs for batch conversions.

    def audio_target(self) -> AudioTarget:
        """Build the fixed encode target from the configured values."""
        return AudioTarget(
            codec_name=self.transcode_output_codec,
            container_format=self.transcode_output_format,
            sample_rate=self.transcode_output_sample_rate,
            channels=self.transcode_output_channels,
            bit_rate=self.transcode_output_bit_rate,
        )

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
