"""
Pydantic models for the canonical Safecast records
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


def _location(latitude: Optional[float], longitude: Optional[float]) -> Dict[str, Optional[float]]:
    return {"latitude": latitude, "longitude": longitude}


class Uploader(BaseModel):
    """Attribution for the account that uploaded a track"""
    username: Optional[str] = None
    email: Optional[str] = None
    linked_account: bool = Field(False, description="True when resolved from an internal user account")

    def to_payload(self) -> Dict[str, Any]:
        payload = {"username": self.username}
        if self.email:
            payload["email"] = self.email
        return payload


class Measurement(BaseModel):
    """One radiation reading with location, time, value, and unit"""
    id: Union[int, str, None] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    captured_at: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_id: Optional[str] = None
    height: Optional[float] = None
    detector: Optional[str] = None
    track_id: Optional[str] = None
    has_spectrum: Optional[bool] = None
    distance_m: Optional[float] = None
    device_name: Optional[str] = None
    sensor_type: Optional[str] = None
    uploader: Optional[Uploader] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "id": self.id,
            "value": self.value,
            "unit": self.unit,
            "captured_at": self.captured_at,
            "location": _location(self.latitude, self.longitude),
            "device_id": self.device_id,
            "height": self.height,
            "detector": self.detector,
            "track_id": self.track_id,
            "has_spectrum": self.has_spectrum,
        }
        if self.distance_m is not None:
            payload["distance_m"] = round(self.distance_m, 1)
        if self.device_name is not None:
            payload["device_name"] = self.device_name
        if self.sensor_type is not None:
            payload["type"] = self.sensor_type
        if self.uploader is not None:
            payload["uploader"] = self.uploader.to_payload()
        return payload


class TrackUpload(BaseModel):
    """A track as listed from uploads (database) or the track index (API)"""
    id: Union[int, str, None] = None
    track_id: Optional[str] = None
    filename: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    detector: Optional[str] = None
    recording_date: Optional[str] = None
    created_at: Optional[str] = None
    source: Optional[str] = None
    source_id: Optional[str] = None
    marker_count: Optional[int] = None
    first_id: Optional[int] = None
    last_id: Optional[int] = None
    centroid_latitude: Optional[float] = None
    centroid_longitude: Optional[float] = None
    uploader: Optional[Uploader] = None

    @property
    def map_url(self) -> Optional[str]:
        if not self.track_id:
            return None
        return f"https://simplemap.safecast.org/trackid/{self.track_id}"

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(
            exclude_none=True,
            exclude={"centroid_latitude", "centroid_longitude", "uploader"},
        )
        if self.centroid_latitude is not None and self.centroid_longitude is not None:
            payload["centroid"] = _location(self.centroid_latitude, self.centroid_longitude)
        if self.uploader is not None:
            payload["username"] = self.uploader.username
            if self.uploader.linked_account:
                payload["uploader"] = self.uploader.to_payload()
        if self.map_url:
            payload["map_url"] = self.map_url
        return payload


class TrackSummary(BaseModel):
    """Aggregates derived from the measurements of one track"""
    track_id: str
    measurement_count: int = 0
    min_latitude: Optional[float] = None
    max_latitude: Optional[float] = None
    min_longitude: Optional[float] = None
    max_longitude: Optional[float] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    average_dose_rate: Optional[float] = None
    unit: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        bounding_box = None
        if self.min_latitude is not None:
            bounding_box = {
                "min_lat": self.min_latitude,
                "max_lat": self.max_latitude,
                "min_lon": self.min_longitude,
                "max_lon": self.max_longitude,
            }
        return {
            "track_id": self.track_id,
            "measurement_count": self.measurement_count,
            "bounding_box": bounding_box,
            "time_span": {"start": self.started_at, "end": self.ended_at},
            "average_dose_rate": self.average_dose_rate,
            "unit": self.unit,
        }


class Sensor(BaseModel):
    """A fixed-location device identified by its most recent measurement"""
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    sensor_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_reading_at: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "device_name": self.device_name,
            "type": self.sensor_type,
            "location": _location(self.latitude, self.longitude),
            "last_reading_at": self.last_reading_at,
        }


class Spectrum(BaseModel):
    """Gamma-ray channel data attached to a measurement"""
    spectrum_id: Union[int, str, None] = None
    marker_id: Union[int, str, None] = None
    filename: Optional[str] = None
    source_format: Optional[str] = None
    device_model: Optional[str] = None
    channel_count: Optional[int] = None
    energy_min_kev: Optional[float] = None
    energy_max_kev: Optional[float] = None
    live_time_sec: Optional[float] = None
    real_time_sec: Optional[float] = None
    calibration: Any = None
    created_at: Optional[str] = None
    channels: Optional[List[float]] = None
    marker: Optional[Measurement] = None
    uploader: Optional[Uploader] = None

    def to_payload(self, include_channels: bool = False) -> Dict[str, Any]:
        payload = {
            "spectrum_id": self.spectrum_id,
            "marker_id": self.marker_id,
            "filename": self.filename,
            "source_format": self.source_format,
            "device_model": self.device_model,
            "channel_count": self.channel_count,
            "energy_range": {"min_kev": self.energy_min_kev, "max_kev": self.energy_max_kev},
            "live_time_sec": self.live_time_sec,
            "real_time_sec": self.real_time_sec,
            "calibration": self.calibration,
            "created_at": self.created_at,
        }
        if include_channels:
            payload["channels"] = self.channels
        if self.marker is not None:
            marker = self.marker
            payload["marker"] = {
                "value": marker.value,
                "unit": marker.unit,
                "location": _location(marker.latitude, marker.longitude),
                "captured_at": marker.captured_at,
                "track_id": marker.track_id,
            }
        if self.uploader is not None:
            payload["uploader"] = self.uploader.to_payload()
        return payload


class QueryLogEntry(BaseModel):
    """Append-only audit record, one per tool invocation"""
    tool_name: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result_count: int = 0
    duration_ms: float = 0.0
    client_info: str = "unknown"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
