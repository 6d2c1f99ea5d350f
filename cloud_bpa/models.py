"""Shared data models for the Cloud BPA analysis core."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, model_validator
from pydantic.alias_generators import to_camel


# Schema-less property bags hold this union: str, int, float, bool, None,
# lists of values and string-keyed maps of values.
PropertyValue = JsonValue
PropertyMap = Dict[str, PropertyValue]

AnalysisType = Literal["full", "security", "compliance", "resources"]
Threshold = Literal["all", "medium", "high"]


def to_property_value(value: Any) -> PropertyValue:
    """Coerce a loosely-typed parsed value into the PropertyValue union."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): to_property_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_property_value(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def to_property_map(value: Any) -> PropertyMap:
    """Like to_property_value, but anything that is not a mapping becomes an empty map."""
    if not isinstance(value, dict):
        return {}
    return {str(k): to_property_value(v) for k, v in value.items()}


class InfraFormat(str, Enum):
    """Infrastructure source formats understood by the parser."""
    AUTO = "AUTO"
    CLOUDFORMATION = "CLOUDFORMATION"
    TERRAFORM = "TERRAFORM"
    CDK = "CDK"
    LIVE_SCAN = "LIVE_SCAN"
    ZIP = "ZIP"


class Severity(str, Enum):
    """Severity of a finding."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class Pillar(str, Enum):
    """The six Well-Architected Framework pillars."""
    OPERATIONAL_EXCELLENCE = "OPERATIONAL_EXCELLENCE"
    SECURITY = "SECURITY"
    RELIABILITY = "RELIABILITY"
    PERFORMANCE_EFFICIENCY = "PERFORMANCE_EFFICIENCY"
    COST_OPTIMIZATION = "COST_OPTIMIZATION"
    SUSTAINABILITY = "SUSTAINABILITY"


class ResourceChangeType(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    MODIFIED = "MODIFIED"


class ComplianceChangeType(str, Enum):
    NEW_VIOLATION = "NEW_VIOLATION"
    RESOLVED = "RESOLVED"
    STATUS_CHANGED = "STATUS_CHANGED"


class ImpactLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskDirection(str, Enum):
    """Which way the security posture moved between two scans."""
    INCREASED = "INCREASED"
    DECREASED = "DECREASED"
    UNCHANGED = "UNCHANGED"


class RiskLevel(str, Enum):
    """Overall risk of a single scan's findings."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire and in storage."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenModel(CamelModel):
    model_config = ConfigDict(frozen=True)


# Parser Models
class ResourceLocation(FrozenModel):
    """Provenance of a parsed resource."""
    file: str = Field(..., description="Source file (archive/entry for ZIP members)")
    line: Optional[int] = Field(None, description="1-based line where the resource starts")
    block: Optional[str] = Field(None, description="Logical block name or address")
    zip_entry: Optional[str] = Field(None, description="Entry name inside a ZIP archive")


class Resource(FrozenModel):
    """A single infrastructure entity extracted from source IaC."""
    type: str = Field(..., description="Resource type, e.g. AWS::S3::Bucket or aws_s3_bucket")
    name: str = Field(..., description="Logical name (CloudFormation) or type.name address (Terraform)")
    properties: PropertyMap = Field(default_factory=dict, description="Resource properties")
    metadata: PropertyMap = Field(default_factory=dict, description="Format-specific metadata")
    dependencies: List[str] = Field(default_factory=list, description="Referenced resources, may dangle")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    location: ResourceLocation = Field(..., description="Where the resource was declared")


class ZipContents(FrozenModel):
    total_files: int = Field(..., description="Number of archive entries that were parsed")
    processed_files: List[str] = Field(default_factory=list, description="Entry names that were parsed")


class ScanMetadata(FrozenModel):
    """Metadata describing one parse call."""
    file_name: str = Field(..., description="Name of the parsed file or archive")
    file_type: str = Field(..., description="Human-readable file type")
    analysis_type: str = Field(..., description="Detected or requested format")
    resource_count: int = Field(0, description="Always equal to the number of resources")
    parameters: Optional[PropertyMap] = Field(None, description="CloudFormation Parameters block")
    outputs: Optional[PropertyMap] = Field(None, description="CloudFormation Outputs block")
    variables: Optional[PropertyMap] = Field(None, description="Terraform variable blocks")
    zip_contents: Optional[ZipContents] = Field(None, description="ZIP processing summary")


class ResourceGraph(FrozenModel):
    """All resources plus metadata parsed from one file or archive."""
    resources: List[Resource] = Field(default_factory=list, description="Parsed resources, unordered")
    metadata: ScanMetadata = Field(..., description="Parse metadata")

    @model_validator(mode="before")
    @classmethod
    def _recount_resources(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resources = data.get("resources") or []
        metadata = data.get("metadata")
        if isinstance(metadata, ScanMetadata):
            metadata = metadata.model_copy(update={"resource_count": len(resources)})
        elif isinstance(metadata, dict):
            metadata = {k: v for k, v in metadata.items() if k not in ("resourceCount", "resource_count")}
            metadata["resourceCount"] = len(resources)
        return {**data, "metadata": metadata}


# Finding & Scan Models
class Finding(FrozenModel):
    """One compliance/security observation produced by the analysis oracle."""
    id: str = Field("", description="Finding identifier")
    rule_id: Optional[str] = Field(None, description="Rule that produced the finding")
    title: str = Field("", description="Short title")
    description: str = Field("", description="Finding description")
    severity: Severity = Field(..., description="Finding severity")
    pillar: Optional[Pillar] = Field(None, description="Well-Architected pillar")
    resource: Optional[str] = Field(None, description="Affected resource")
    recommendation: str = Field("", description="Recommended fix")
    framework: Optional[str] = Field(None, description="Framework the rule belongs to")
    category: Optional[str] = Field(None, description="Finding category")
    line: Optional[int] = Field(None, description="Source line, when known")


class ScanResult(FrozenModel):
    """Persisted snapshot of a completed analysis run."""
    scan_id: str = Field(..., description="Scan identifier")
    analysis_id: Optional[str] = Field(None, description="Analysis that produced the scan")
    account_id: str = Field(..., description="Scanned AWS account")
    account_name: Optional[str] = Field(None, description="Account display name")
    environment: Optional[str] = Field(None, description="Environment label")
    scan_date: str = Field(..., description="ISO-8601 scan timestamp")
    total_resources: int = Field(0, ge=0, description="Total resource count")
    resources_by_service: Dict[str, int] = Field(default_factory=dict, description="Counts per service")
    resources_by_region: Dict[str, int] = Field(default_factory=dict, description="Counts per region")
    resources_by_type: Dict[str, int] = Field(default_factory=dict, description="Counts per resource type")
    compliance_score: float = Field(0, ge=0, le=100, description="Compliance score 0-100")
    security_findings: int = Field(0, ge=0, description="Number of security findings")
    critical_findings: int = Field(0, ge=0, description="Number of critical findings")
    findings: List[Finding] = Field(default_factory=list, description="Findings of the scan")
    status: Optional[str] = Field(None, description="Scan status")


class ScoreCard(FrozenModel):
    overall_score: int = Field(..., description="Rounded mean of the six pillar scores")
    pillar_scores: Dict[str, float] = Field(..., description="Score per pillar")
    framework_scores: Dict[str, float] = Field(default_factory=dict, description="Score per framework")


class FindingsSummary(FrozenModel):
    """Aggregate counts and scores over one scan's findings."""
    by_severity: Dict[str, int] = Field(..., description="Finding counts per severity")
    by_pillar: Dict[str, int] = Field(..., description="Finding counts per pillar")
    by_framework: Dict[str, int] = Field(default_factory=dict, description="Finding counts per framework")
    scores: ScoreCard = Field(..., description="Pillar, framework and overall scores")
    risk_level: RiskLevel = Field(..., description="Overall risk level")


# Differential Models
class DifferentialOptions(CamelModel):
    include_details: bool = Field(True, description="Emit per-item differences")
    threshold: Threshold = Field("all", description="Minimum impact/severity of reported differences")


class ResourceDifference(FrozenModel):
    resource_type: str = Field(..., description="ServiceResources or RegionalResources")
    service: str = Field(..., description="Service key, or 'all' for regional differences")
    region: str = Field(..., description="Region key, or 'all' for service differences")
    change_type: ResourceChangeType = Field(..., description="Direction of the count change")
    old_value: Optional[int] = Field(None, description="Baseline count")
    new_value: Optional[int] = Field(None, description="Comparison count")
    impact: ImpactLevel = Field(..., description="Impact tier of the change")
    description: str = Field(..., description="Human-readable summary")


class ComplianceDifference(FrozenModel):
    rule_id: str = Field(..., description="Rule identifier")
    rule_name: str = Field(..., description="Rule title, or the rule id")
    change_type: ComplianceChangeType = Field(..., description="Kind of compliance change")
    old_status: Optional[str] = Field(None, description="Previous status or severity")
    new_status: Optional[str] = Field(None, description="New status or severity")
    severity: Severity = Field(..., description="Severity used for threshold filtering")
    impact: str = Field(..., description="Human-readable impact")
    description: str = Field(..., description="Finding description")
    resource_id: Optional[str] = Field(None, description="Affected resource")


class ResourceChanges(FrozenModel):
    added: int = 0
    removed: int = 0
    modified: int = 0
    differences: List[ResourceDifference] = Field(default_factory=list)


class ComplianceChanges(FrozenModel):
    new_violations: int = 0
    resolved_violations: int = 0
    status_changes: int = 0
    differences: List[ComplianceDifference] = Field(default_factory=list)


class SecurityImpact(FrozenModel):
    score_change: float = Field(..., description="comparison minus baseline compliance score")
    risk_level: RiskDirection = Field(..., description="Direction of the security posture")
    critical_changes: int = Field(..., description="comparison minus baseline critical findings")
    findings_change: int = Field(..., description="comparison minus baseline security findings")


class PerformanceMetrics(FrozenModel):
    execution_time: int = Field(..., description="Milliseconds spent computing the comparison")
    resources_compared: int = Field(..., description="Sum of both scans' total resources")
    findings_compared: int = Field(..., description="Sum of both scans' finding counts")


class DifferentialAnalysisResult(FrozenModel):
    """What changed between two scans of the same account."""
    id: Optional[str] = Field(None, description="Stored result identifier")
    tenant_id: Optional[str] = Field(None, description="Owning tenant")
    project_id: Optional[str] = Field(None, description="Owning project")
    baseline_scan: ScanResult = Field(..., description="Earlier scan")
    comparison_scan: ScanResult = Field(..., description="Later scan")
    analysis_date: str = Field(..., description="ISO-8601 time of the comparison")
    analysis_type: AnalysisType = Field("full", description="Requested analysis type")
    total_changes: int = Field(..., description="Sum of all change counts")
    resource_changes: ResourceChanges
    compliance_changes: ComplianceChanges
    security_impact: SecurityImpact
    performance_metrics: Optional[PerformanceMetrics] = None
    recommendations: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    ttl: Optional[int] = Field(None, description="Storage expiry, epoch seconds")


# Request Models
class DifferentialAnalysisRequest(CamelModel):
    """Request model for a stored differential analysis."""
    tenant_id: str = Field(..., description="Tenant owning both scans")
    project_id: str = Field(..., description="Project owning both scans")
    baseline_scan_id: str = Field(..., description="Earlier scan identifier")
    comparison_scan_id: str = Field(..., description="Later scan identifier")
    analysis_type: AnalysisType = Field("full", description="Requested analysis type")
    options: Optional[DifferentialOptions] = Field(None, description="Detail and threshold options")


class ScanRegistration(CamelModel):
    """Request model for storing a completed scan snapshot."""
    tenant_id: str = Field(..., description="Tenant owning the scan")
    project_id: str = Field(..., description="Project owning the scan")
    scan: ScanResult = Field(..., description="The scan snapshot")


class AnalysisRegistration(CamelModel):
    """Request model for storing a scan built from a parsed graph and its findings."""
    tenant_id: str = Field(..., description="Tenant owning the scan")
    project_id: str = Field(..., description="Project owning the scan")
    scan_id: str = Field(..., description="Scan identifier")
    account_id: str = Field(..., description="AWS account the graph describes")
    region: Optional[str] = Field(None, description="Region for resources that do not carry one")
    analysis_id: Optional[str] = Field(None, description="Analysis that produced the findings")
    account_name: Optional[str] = Field(None, description="Account display name")
    environment: Optional[str] = Field(None, description="Environment label")
    scan_date: Optional[str] = Field(None, description="ISO-8601 scan time, now when omitted")
    graph: ResourceGraph = Field(..., description="Parsed infrastructure")
    findings: List[Finding] = Field(default_factory=list, description="Findings raised against the graph")


class RequestContext(CamelModel):
    """Caller identity handed in by the transport layer."""
    tenant_id: Optional[str] = Field(None, description="Caller's tenant")
    role: str = Field("Analyst", description="Caller's role")
    user_id: Optional[str] = Field(None, description="Caller's user id")
    project_ids: List[str] = Field(default_factory=list, description="Projects the caller may access")


# Response Models
class DifferentialHistory(CamelModel):
    analyses: List[DifferentialAnalysisResult] = Field(default_factory=list, description="Newest first")
    has_more: bool = Field(False, description="More results exist beyond the limit")
    total: int = Field(0, description="Number of results returned")
