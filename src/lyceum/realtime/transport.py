"""
Realtime WebRTC transport — peer connection to the conversational engine.

Connect flow:
  1. Open the local microphone (MediaPlayer on an ffmpeg device)
  2. Create an RTCPeerConnection with a gated mic track + the control
     data channel ("oai-events", ordered and reliable)
  3. POST the SDP offer to {realtime_url}/calls with the ephemeral key
  4. Apply the SDP answer and wait (bounded) for the data channel to open

Inbound engine audio plays through a gated sink, so pause can silence
playback without renegotiating. Muting the mic also goes through a gate:
capture keeps running and the engine receives silence.

Requires: aiortc av numpy httpx
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
import numpy as np
from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder
from av import AudioFrame

from lyceum.core.config import RealtimeConfig, config
from lyceum.core.errors import RealtimeConnectionError
from lyceum.realtime.base import END_OF_STREAM, Connection

logger = logging.getLogger(__name__)


# ─── Audio Gate ──────────────────────────────────────────────────


def _silence_like(frame: AudioFrame) -> AudioFrame:
    """A zeroed frame with the same shape, rate and timing as `frame`."""
    samples = np.zeros_like(frame.to_ndarray())
    silent = AudioFrame.from_ndarray(
        samples, format=frame.format.name, layout=frame.layout.name
    )
    silent.sample_rate = frame.sample_rate
    silent.pts = frame.pts
    silent.time_base = frame.time_base
    return silent


class GatedAudioTrack(MediaStreamTrack):
    """
    Pass-through audio track that can be switched to silence.

    The source keeps being read while disabled, so the underlying device
    (or remote track) never stalls and RTP timing stays continuous.
    """

    kind = "audio"

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self._source = source
        self.enabled = True

    async def recv(self) -> AudioFrame:
        frame = await self._source.recv()
        if self.enabled:
            return frame
        return _silence_like(frame)

    def stop(self) -> None:
        super().stop()
        self._source.stop()


class PlaybackSink:
    """Plays the engine's audio track; pause swaps it for silence."""

    def __init__(self, device: str = "", fmt: str | None = None) -> None:
        if device:
            self._recorder: Any = MediaRecorder(device, format=fmt)
        else:
            self._recorder = MediaBlackhole()
        self._gate: GatedAudioTrack | None = None
        self._paused = False

    async def attach(self, track: MediaStreamTrack) -> None:
        self._gate = GatedAudioTrack(track)
        self._gate.enabled = not self._paused
        self._recorder.addTrack(self._gate)
        await self._recorder.start()
        logger.info("Playback started")

    def pause(self) -> None:
        self._paused = True
        if self._gate is not None:
            self._gate.enabled = False

    def resume(self) -> None:
        self._paused = False
        if self._gate is not None:
            self._gate.enabled = True

    @property
    def paused(self) -> bool:
        return self._paused

    async def stop(self) -> None:
        await self._recorder.stop()


# ─── Connection ──────────────────────────────────────────────────


class RealtimeConnection(Connection):
    """One live WebRTC session with the engine."""

    def __init__(
        self,
        pc: RTCPeerConnection,
        channel: Any,  # RTCDataChannel
        player: Any,  # MediaPlayer
        microphone: GatedAudioTrack,
        sink: PlaybackSink,
    ) -> None:
        super().__init__()
        self.pc = pc
        self.channel = channel
        self._player = player
        self._microphone = microphone
        self._sink = sink
        self._torn_down = False

    @property
    def is_open(self) -> bool:
        return not self._torn_down and self.channel.readyState == "open"

    def send(self, event: dict) -> bool:
        if not self.is_open:
            logger.debug("Channel closed, dropping %s", event.get("type"))
            return False
        self.channel.send(json.dumps(event))
        return True

    def set_input_enabled(self, enabled: bool) -> None:
        self._microphone.enabled = enabled

    def pause_playback(self) -> None:
        self._sink.pause()

    def resume_playback(self) -> None:
        self._sink.resume()

    def receive(self, message: str | bytes) -> None:
        """Data channel → inbound queue, in arrival order."""
        if not self._torn_down:
            self.inbound.put_nowait(message)

    async def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        try:
            try:
                self._microphone.stop()
            except Exception as e:
                logger.warning("Microphone stop failed: %s", e)
            try:
                await self._sink.stop()
            except Exception as e:
                logger.warning("Playback sink stop failed: %s", e)
            try:
                self.channel.close()
            except Exception as e:
                logger.debug("Data channel close failed: %s", e)
            await self.pc.close()
        finally:
            self.inbound.put_nowait(END_OF_STREAM)
        logger.info("Realtime connection torn down")


# ─── Connector ───────────────────────────────────────────────────


def _ice_servers(servers: tuple[dict, ...]) -> list[RTCIceServer]:
    ice_list = []
    for server in servers:
        urls = server.get("urls", "")
        if server.get("username"):
            ice_list.append(
                RTCIceServer(
                    urls=urls,
                    username=server["username"],
                    credential=server.get("credential", ""),
                )
            )
        else:
            ice_list.append(RTCIceServer(urls=urls))
    return ice_list


class RealtimeConnector:
    """Builds RealtimeConnections. One connect() per session start."""

    def __init__(self, settings: RealtimeConfig | None = None) -> None:
        self.settings = settings or config.realtime

    def _open_microphone(self) -> Any:
        try:
            player = MediaPlayer(
                self.settings.media_device, format=self.settings.media_format
            )
        except Exception as e:
            raise RealtimeConnectionError(f"Microphone unavailable: {e}") from e
        if player.audio is None:
            raise RealtimeConnectionError("Microphone unavailable: no audio track")
        return player

    async def _exchange_sdp(self, ephemeral_key: str, offer_sdp: str) -> str:
        url = f"{self.settings.realtime_url.rstrip('/')}/calls"
        try:
            async with httpx.AsyncClient(timeout=self.settings.connect_timeout) as client:
                response = await client.post(
                    url,
                    content=offer_sdp,
                    headers={
                        "Authorization": f"Bearer {ephemeral_key}",
                        "Content-Type": "application/sdp",
                    },
                )
        except httpx.HTTPError as e:
            raise RealtimeConnectionError(f"SDP exchange failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "SDP exchange rejected: %s %s", response.status_code, response.text[:200]
            )
            raise RealtimeConnectionError("Failed to establish WebRTC connection")
        return response.text

    async def connect(self, ephemeral_key: str) -> RealtimeConnection:
        """
        Negotiate a live connection.

        Raises RealtimeConnectionError on media, signaling or data-channel
        failure; anything acquired before the failure is released.
        """
        player = self._open_microphone()
        microphone = GatedAudioTrack(player.audio)
        sink = PlaybackSink(self.settings.playback_device, self.settings.playback_format)

        pc = RTCPeerConnection(
            configuration=RTCConfiguration(
                iceServers=_ice_servers(self.settings.ice_servers)
            )
        )
        pc.addTrack(microphone)
        channel = pc.createDataChannel(self.settings.data_channel_label, ordered=True)
        connection = RealtimeConnection(pc, channel, player, microphone, sink)
        opened = asyncio.Event()

        @channel.on("open")
        def on_open() -> None:
            logger.info("Data channel opened: %s", channel.label)
            opened.set()

        @channel.on("message")
        def on_message(message: str | bytes) -> None:
            connection.receive(message)

        @channel.on("close")
        def on_close() -> None:
            logger.info("Data channel closed")

        @pc.on("track")
        async def on_track(track: MediaStreamTrack) -> None:
            if track.kind == "audio":
                await sink.attach(track)

        @pc.on("connectionstatechange")
        async def on_state_change() -> None:
            state = pc.connectionState
            logger.info("Peer connection state: %s", state)
            if state in ("failed", "closed"):
                await connection.teardown()

        try:
            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
            answer_sdp = await self._exchange_sdp(
                ephemeral_key, pc.localDescription.sdp
            )
            await pc.setRemoteDescription(
                RTCSessionDescription(sdp=answer_sdp, type="answer")
            )
            await asyncio.wait_for(opened.wait(), timeout=self.settings.connect_timeout)
        except asyncio.TimeoutError as e:
            await connection.teardown()
            raise RealtimeConnectionError("Data channel did not open in time") from e
        except RealtimeConnectionError:
            await connection.teardown()
            raise
        except Exception as e:
            await connection.teardown()
            raise RealtimeConnectionError(f"WebRTC negotiation failed: {e}") from e

        logger.info("Realtime connection established")
        return connection
