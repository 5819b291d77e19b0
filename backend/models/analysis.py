"""Analysis result models.

Image analysis produces a rich structured object; ingestion produces one of
four tagged outcome variants depending on the document kind. Every variant
knows which derived fields it managed to produce, so the document update only
ever writes fields that were actually generated.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from models.document import IMAGE, OTHER, TEXT, VIDEO


def _default_setting() -> Dict[str, Any]:
    return {"type": "", "location": "", "background": "", "environment": []}


@dataclass
class DetailedAnalysis:
    """Structured visual analysis used for precise search (clothing, setting, mood...)."""
    subjects: List[Dict[str, Any]] = field(default_factory=list)
    colors: List[Dict[str, Any]] = field(default_factory=list)
    objects: List[Dict[str, Any]] = field(default_factory=list)
    setting: Dict[str, Any] = field(default_factory=_default_setting)
    mood: List[str] = field(default_factory=list)
    style: List[str] = field(default_factory=list)
    clothing: List[Dict[str, Any]] = field(default_factory=list)
    text: List[Dict[str, Any]] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    composition: str = ""
    lighting: str = ""
    quality: str = ""

    @classmethod
    def from_parsed(cls, parsed: Dict[str, Any]) -> "DetailedAnalysis":
        return cls(
            subjects=parsed.get("subjects") or [],
            colors=parsed.get("colors") or [],
            objects=parsed.get("objects") or [],
            setting=parsed.get("setting") or _default_setting(),
            mood=parsed.get("mood") or [],
            style=parsed.get("style") or [],
            clothing=parsed.get("clothing") or [],
            text=parsed.get("text") or [],
            actions=parsed.get("actions") or [],
            composition=parsed.get("composition") or "",
            lighting=parsed.get("lighting") or "",
            quality=parsed.get("quality") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImageAnalysisResult:
    """Output of the multi-model image analyzer."""
    description: str
    detailed_analysis: DetailedAnalysis
    tags: List[str]
    searchable_text: str
    model_used: str
    processing_time_ms: int
    confidence: float


@dataclass
class DocumentAnalysis:
    """Base ingestion outcome; subclasses are tagged by document kind."""
    kind: ClassVar[str] = OTHER

    document_id: str
    embedding: Optional[List[float]] = None
    tags: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def update_payload(self, processed_at: Optional[datetime] = None) -> Dict[str, Any]:
        """Build the `documents` update containing only produced fields."""
        processed_at = processed_at or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {"processed_at": processed_at.isoformat()}

        if self.embedding:
            payload["embedding"] = "[" + ",".join(str(v) for v in self.embedding) + "]"
        if self.tags:
            payload["tags"] = self.tags
        if self.summary:
            payload["ai_summary"] = self.summary
        return payload

    def to_summary(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "has_embedding": bool(self.embedding),
            "tags_count": len(self.tags),
            "has_summary": bool(self.summary),
            "errors": list(self.errors),
        }


@dataclass
class ImageAnalysis(DocumentAnalysis):
    kind: ClassVar[str] = IMAGE

    description: Optional[str] = None
    detailed_analysis: Optional[DetailedAnalysis] = None
    searchable_text: Optional[str] = None
    model_used: Optional[str] = None
    fallback_used: bool = False

    def update_payload(self, processed_at: Optional[datetime] = None) -> Dict[str, Any]:
        payload = super().update_payload(processed_at)
        if self.description:
            payload["description"] = self.description
        if self.detailed_analysis:
            payload["detailed_analysis"] = self.detailed_analysis.to_dict()
        if self.searchable_text:
            payload["searchable_text"] = self.searchable_text
        if self.model_used:
            payload["analysis_model"] = self.model_used
        return payload

    def to_summary(self) -> Dict[str, Any]:
        summary = super().to_summary()
        summary.update({
            "has_description": bool(self.description),
            "has_detailed_analysis": self.detailed_analysis is not None,
            "model_used": self.model_used,
            "fallback_used": self.fallback_used,
        })
        return summary


@dataclass
class TextAnalysis(DocumentAnalysis):
    kind: ClassVar[str] = TEXT

    chunks_indexed: int = 0

    def to_summary(self) -> Dict[str, Any]:
        summary = super().to_summary()
        summary["chunks_indexed"] = self.chunks_indexed
        return summary


@dataclass
class VideoAnalysis(DocumentAnalysis):
    kind: ClassVar[str] = VIDEO


@dataclass
class GenericAnalysis(DocumentAnalysis):
    kind: ClassVar[str] = OTHER


@dataclass
class IngestionReport:
    """What one ingestion run wrote to the document row."""
    document_id: str
    kind: str
    fields_written: List[str]
    fallback_used: bool = False
    errors: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_analysis(cls, analysis: DocumentAnalysis, payload: Dict[str, Any]) -> "IngestionReport":
        return cls(
            document_id=analysis.document_id,
            kind=analysis.kind,
            fields_written=sorted(payload),
            fallback_used=getattr(analysis, "fallback_used", False),
            errors=list(analysis.errors),
            details=analysis.to_summary(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
