from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Protocol


logger = logging.getLogger("deckgen.pipeline")

DataSource = Callable[[Mapping[str, Any]], "dict[str, Any] | None"]


class SectionDataStore(Protocol):
    def fetch_section_data(self, name: str, context: Mapping[str, Any]) -> dict[str, Any] | None:
        ...


class DataSourceRegistry:
    """Named deterministic content sources, looked up by a section's ``data_source``."""

    def __init__(self):
        self._sources: dict[str, DataSource] = {}

    def register(self, name: str, source: DataSource) -> None:
        self._sources[name] = source

    def register_many(self, sources: Iterable[tuple[str, DataSource]]) -> None:
        for name, source in sources:
            self.register(name, source)

    def get(self, name: str) -> DataSource | None:
        return self._sources.get(name)

    def names(self) -> list[str]:
        return sorted(self._sources.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def fetch(self, name: str, context: Mapping[str, Any]) -> dict[str, Any] | None:
        source = self.get(name)
        if source is None:
            return None
        return source(context)


# Sources served by the CRM data store, grouped by the template that uses them.
STORE_SOURCES: tuple[str, ...] = (
    # customer-cheat-sheet
    "getCustomerOverviewStats",
    "getPropertyIntelData",
    "getStormHistoryTimeline",
    "generateCustomerTalkingPoints",
    "generateObjectionHandlers",
    "getRecommendedNextSteps",
    # project-timeline
    "getProjectTitleData",
    "getProjectStats",
    "getProjectTimeline",
    "getUpcomingTasks",
    "getWeatherForecast",
    # team-performance
    "getTeamKPIStats",
    "getLeaderboardData",
    "getRevenueTrendData",
    "getCoachingOpportunities",
    "getPipelineHealthData",
    "generatePerformanceInsights",
    # storm-deployment
    "getStormImpactStats",
    "getAffectedAreaMap",
    "getPriorityStormLeads",
    "getTeamAssignments",
    "generateStormTalkingPoints",
    "getLogisticsChecklist",
    # insurance-prep
    "getClaimOverviewStats",
    "getDamageDocumentation",
    "getCarrierIntel",
    "generateNegotiationPoints",
    "getDocumentationChecklist",
    # daily-briefing
    "getDailyStats",
    "getDailyWeatherForecast",
    "getPriorityCustomersToday",
    "getAtRiskDeals",
    "getScheduledCallsTimeline",
    "generateDailyTalkingPoints",
    # weekly-pipeline
    "getPipelineSummaryStats",
    "getDealsByStageChart",
    "getStageMovementStats",
    "getAtRiskOpportunities",
    "getHotDealsToClose",
    "getRevenueForecastChart",
    "generatePipelineCoachingPoints",
    # market-analysis
    "getMarketOverviewStats",
    "getStormActivityTrend",
    "getOpportunityHeatMap",
    "getCompetitiveLandscape",
    "generateStrategicRecommendations",
    # competitor-analysis
    "getMarketPositionStats",
    "getCompetitorLandscapeData",
    "getWinLossAnalysisData",
    "getPricingIntelData",
    "getTopLossReasons",
    "generateDifferentiationStrategy",
    "getCompetitiveActionItems",
    # storm-postmortem
    "getStormResponseSummaryStats",
    "getStormPerformanceChart",
    "getStormConversionFunnel",
    "getStormRepPerformance",
    "getHistoricalStormComparison",
    "getStormLessonsLearned",
    "generateStormPostmortemRecommendations",
    # customer-proposal
    "getCompanyCredentialsStats",
    "getPropertyAssessmentData",
    "getScopeOfWorkData",
    "getPricingOptionsData",
    "getFinancingOptionsData",
    "getTestimonialsData",
    "getWarrantyData",
    "getProposalNextSteps",
)


def _today() -> str:
    return date.today().isoformat()


def _store_source(store: SectionDataStore, name: str) -> DataSource:
    def fetch(context: Mapping[str, Any]) -> dict[str, Any] | None:
        return store.fetch_section_data(name, context)

    return fetch


def customer_title(store: SectionDataStore) -> DataSource:
    def fetch(context: Mapping[str, Any]) -> dict[str, Any] | None:
        data = store.fetch_section_data("getCustomerTitleData", context) or {}
        name = str(data.get("name") or "").strip()
        address = str(data.get("address") or "").strip()
        return {
            "title": name or "Customer Prep",
            "subtitle": address or "Customer details unavailable",
            "date": _today(),
            "prepared_for": str(data.get("assigned_rep") or "Sales Team"),
        }

    return fetch


def _period(context: Mapping[str, Any]) -> str | None:
    date_range = context.get("date_range") or {}
    if isinstance(date_range, Mapping) and date_range.get("start") and date_range.get("end"):
        return f"{date_range['start']} to {date_range['end']}"
    return None


def team_report_title(context: Mapping[str, Any]) -> dict[str, Any]:
    period = _period(context)
    subtitle = "Sales Team Performance"
    if period:
        subtitle = f"{subtitle} | {period}"
    return {"title": "Team Performance Review", "subtitle": subtitle, "date": _today()}


def storm_brief_title(context: Mapping[str, Any]) -> dict[str, Any]:
    region = str(context.get("region_id") or "").strip()
    return {
        "title": "Storm Deployment Brief",
        "subtitle": f"Region: {region}" if region else "All service regions",
        "date": _today(),
    }


def scoped_title(title: str, *, scope_key: str, scope_label: str, fallback: str, prepared_for: str | None = None) -> DataSource:
    """Title slide built from request context alone: ``<label>: <scope> | <period>``."""

    def fetch(context: Mapping[str, Any]) -> dict[str, Any] | None:
        scope = str(context.get(scope_key) or "").strip()
        parts = [f"{scope_label}: {scope}" if scope else fallback]
        period = _period(context)
        if period:
            parts.append(period)
        content = {"title": title, "subtitle": " | ".join(parts), "date": _today()}
        if prepared_for:
            content["prepared_for"] = prepared_for
        return content

    return fetch


def insurance_prep_title(store: SectionDataStore) -> DataSource:
    def fetch(context: Mapping[str, Any]) -> dict[str, Any] | None:
        data = store.fetch_section_data("getCustomerTitleData", context) or {}
        name = str(data.get("name") or "").strip()
        return {
            "title": "Adjuster Meeting Prep",
            "subtitle": name or "Claim preparation",
            "date": _today(),
        }

    return fetch


def proposal_title(store: SectionDataStore) -> DataSource:
    def fetch(context: Mapping[str, Any]) -> dict[str, Any] | None:
        data = store.fetch_section_data("getCustomerTitleData", context) or {}
        name = str(data.get("name") or "").strip()
        address = str(data.get("address") or "").strip()
        return {
            "title": "Roofing Proposal",
            "subtitle": address or "Property assessment and scope of work",
            "date": _today(),
            "prepared_for": name or "Homeowner",
            "prepared_by": "Guardian Storm Repair",
        }

    return fetch


def build_default_registry(store: SectionDataStore) -> DataSourceRegistry:
    registry = DataSourceRegistry()
    registry.register_many((name, _store_source(store, name)) for name in STORE_SOURCES)
    registry.register("getCustomerTitleData", customer_title(store))
    registry.register("getInsurancePrepTitleData", insurance_prep_title(store))
    registry.register("getTeamReportTitleData", team_report_title)
    registry.register("getStormBriefTitleData", storm_brief_title)
    registry.register("getProposalTitleData", proposal_title(store))
    registry.register("getDailyBriefingTitleData", scoped_title("Morning Briefing", scope_key="team_id", scope_label="Rep", fallback="Your day ahead"))
    registry.register("getWeeklyPipelineTitleData", scoped_title("Weekly Pipeline Review", scope_key="team_id", scope_label="Team", fallback="All team members"))
    registry.register(
        "getMarketAnalysisTitleData",
        scoped_title("Market Analysis Brief", scope_key="region_id", scope_label="Region", fallback="All service regions", prepared_for="Leadership Team"),
    )
    registry.register(
        "getCompetitorAnalysisTitleData",
        scoped_title("Competitive Intelligence", scope_key="region_id", scope_label="Market", fallback="All markets"),
    )
    registry.register(
        "getStormPostmortemTitleData",
        scoped_title("Storm Response Post-Mortem", scope_key="region_id", scope_label="Region", fallback="All storm regions", prepared_for="Leadership Team"),
    )
    logger.debug("data_sources_registered count=%d", len(registry.names()))
    return registry
