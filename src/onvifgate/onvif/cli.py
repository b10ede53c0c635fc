"""Standalone ONVIF tools: discover, info, streams."""

from __future__ import annotations

import asyncio
import getpass
import sys

import fire  # type: ignore[import-untyped]

from onvifgate.gateway.identity import is_network_video_transmitter, split_endpoint
from onvifgate.models.camera import DeviceInfo, MediaProfile
from onvifgate.onvif.client import OnvifCameraClient, OnvifStreamUri
from onvifgate.onvif.discovery import discover_devices


class OnvifCLI:
    """Standalone ONVIF utilities."""

    def discover(self, timeout_s: float = 8.0, attempts: int = 2, ttl: int = 4) -> None:
        """Discover ONVIF devices on the local network."""
        try:
            devices = discover_devices(timeout_s=timeout_s, attempts=attempts, ttl=ttl)
        except Exception as exc:
            _exit_with_error(str(exc))
            return

        if not devices:
            print("No ONVIF devices discovered.")
            print("Tips:")
            print("- Verify ONVIF and WS-Discovery are enabled on the camera.")
            print("- The gateway and camera must share an L2 subnet (multicast).")
            print("- Retry with a longer scan: --timeout_s 15 --attempts 3")
            return

        print("Discovered ONVIF devices:")
        for device in devices:
            marker = "" if is_network_video_transmitter(device.device_types) else " (not a camera)"
            print(f"- {device.friendly_name}{marker}")
            print(f"  endpoint: {device.service_endpoint}")
            if device.urn:
                print(f"  urn: {device.urn}")
            if device.device_types:
                print(f"  types: {', '.join(sorted(device.device_types))}")

    def info(
        self,
        address: str,
        u: str,
        p: str | None = None,
        wsdl_dir: str | None = None,
    ) -> None:
        """Show identity, scopes and media profiles of one device.

        The address accepts 'host', 'host:port' or a device service URL.
        """
        host, port = _parse_address(address)
        password = p if p is not None else getpass.getpass("ONVIF password: ")

        async def _run() -> tuple[DeviceInfo, list[str], list[MediaProfile]]:
            client = OnvifCameraClient(host, u, password, port=port, wsdl_dir=wsdl_dir)
            try:
                await client.initialize()
                return client.device_info, await client.scopes(), client.profiles
            finally:
                await client.close()

        try:
            info, scopes, profiles = asyncio.run(_run())
        except Exception as exc:
            _exit_with_error(str(exc))
            return

        print(f"ONVIF device at {host}:{port}")
        print(f"  manufacturer: {info.manufacturer}")
        print(f"  model: {info.model}")
        print(f"  firmware_version: {info.firmware_version}")
        print(f"  serial_number: {info.serial_number}")
        if scopes:
            print("Scopes:")
            for scope in scopes:
                print(f"- {scope}")

        if not profiles:
            print("No media profiles reported.")
            return

        print("Media profiles:")
        for profile in profiles:
            print(f"- token={profile.token} name={profile.name} ptz={profile.ptz}")
            video = profile.video
            if video is not None:
                print(
                    "  video:"
                    f" encoding={video.encoding or 'unknown'}"
                    f" resolution={video.resolution or 'unknown'}"
                    f" fps_limit={video.frame_rate_limit or 'unknown'}"
                    f" bitrate_kbps={video.bitrate_limit_kbps or 'unknown'}"
                )
            audio = profile.audio
            if audio is not None:
                print(
                    "  audio:"
                    f" encoding={audio.encoding or 'unknown'}"
                    f" bitrate_kbps={audio.bitrate_kbps or 'unknown'}"
                    f" sample_rate_khz={audio.sample_rate_khz or 'unknown'}"
                )

    def streams(
        self,
        address: str,
        u: str,
        p: str | None = None,
        wsdl_dir: str | None = None,
    ) -> None:
        """Show RTSP stream URIs for each media profile."""
        host, port = _parse_address(address)
        password = p if p is not None else getpass.getpass("ONVIF password: ")

        async def _run() -> list[OnvifStreamUri]:
            client = OnvifCameraClient(host, u, password, port=port, wsdl_dir=wsdl_dir)
            try:
                return await client.get_stream_uris()
            finally:
                await client.close()

        try:
            streams = asyncio.run(_run())
        except Exception as exc:
            _exit_with_error(str(exc))
            return

        if not streams:
            print("No media profiles found.")
            return

        print(f"RTSP streams for ONVIF device {host}:{port}:")
        for stream in streams:
            if stream.uri:
                print(f"- token={stream.profile_token} name={stream.profile_name} uri={stream.uri}")
                continue
            print(
                "-"
                f" token={stream.profile_token} name={stream.profile_name}"
                f" error={stream.error or 'unknown'}"
            )


def _parse_address(address: str) -> tuple[str, int]:
    """Parse 'host', 'host:port', '[v6]:port' or a service URL into (host, port)."""
    normalized = address.strip()
    if "://" in normalized or normalized.startswith("["):
        try:
            return split_endpoint(normalized)
        except ValueError as exc:
            _exit_with_error(str(exc))
    if normalized.count(":") == 1:
        host, port_str = normalized.rsplit(":", 1)
        try:
            return host, int(port_str)
        except ValueError:
            return normalized, 80
    return normalized, 80


def _exit_with_error(message: str) -> None:
    print(f"✗ {message}", file=sys.stderr)
    raise SystemExit(1)


def main() -> None:
    """ONVIF CLI entrypoint."""
    fire.Fire(OnvifCLI)


if __name__ == "__main__":
    main()
