from __future__ import annotations

from dataclasses import dataclass, replace

from deckgen.deck_types import ContextRequirement, Section, SlideType, Template
from deckgen.services.branding import GUARDIAN_DARK, GUARDIAN_LIGHT


@dataclass(frozen=True)
class TemplateCategory:
    """UI grouping for the template picker; ``id`` matches ``Template.category``."""

    id: str
    name: str
    icon: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "icon": self.icon}


def _section(
    id: str,
    title: str,
    type: SlideType,
    data_source: str,
    description: str,
    *,
    ai_enhanced: bool = False,
    default_enabled: bool = True,
) -> Section:
    return Section(
        id=id,
        title=title,
        type=type,
        data_source=data_source,
        ai_enhanced=ai_enhanced,
        default_enabled=default_enabled,
        description=description,
    )


CUSTOMER_CHEAT_SHEET = Template(
    id="customer-cheat-sheet",
    name="Customer Interaction Prep",
    description="Bespoke talking points and intel for customer meetings. Includes property data, storm history, and generated conversation starters.",
    audience="rep",
    category="sales",
    required_context=(ContextRequirement(type="customer", required=True, label="Customer"),),
    sections=(
        _section("title", "Cover Slide", SlideType.TITLE, "getCustomerTitleData", "Customer name, address, and prep date"),
        _section("customer-overview", "Customer At-A-Glance", SlideType.STATS, "getCustomerOverviewStats", "Lead score, property value, roof age, storm exposure"),
        _section("property-intel", "Property Intelligence", SlideType.IMAGE, "getPropertyIntelData", "Street view image with property details"),
        _section("storm-history", "Storm Exposure History", SlideType.TIMELINE, "getStormHistoryTimeline", "Recent storms affecting this property"),
        _section("talking-points", "Recommended Talking Points", SlideType.TALKING_POINTS, "generateCustomerTalkingPoints", "Conversation starters and value props", ai_enhanced=True),
        _section("objection-handlers", "Objection Handlers", SlideType.LIST, "generateObjectionHandlers", "Common objections with proven responses", ai_enhanced=True),
        _section("next-steps", "Recommended Next Steps", SlideType.LIST, "getRecommendedNextSteps", "Suggested actions based on customer status", ai_enhanced=True, default_enabled=False),
    ),
    branding=GUARDIAN_DARK,
    tags=("sales", "customer-prep", "field-work"),
    estimated_slides=5,
)

PROJECT_TIMELINE = Template(
    id="project-timeline",
    name="Project Timeline Overview",
    description="Visual project status for managers or homeowner updates. Shows milestones, current status, and upcoming steps.",
    audience="manager",
    category="operations",
    required_context=(ContextRequirement(type="customer", required=True, label="Customer/Project"),),
    sections=(
        _section("title", "Cover Slide", SlideType.TITLE, "getProjectTitleData", "Project name, address, and current status"),
        _section("project-stats", "Project Overview", SlideType.STATS, "getProjectStats", "Contract value, timeline, completion percentage"),
        _section("timeline", "Project Timeline", SlideType.TIMELINE, "getProjectTimeline", "Visual milestone tracker"),
        _section("upcoming-tasks", "Upcoming Tasks", SlideType.LIST, "getUpcomingTasks", "Next steps and action items"),
        _section("weather-forecast", "Weather Outlook", SlideType.CHART, "getWeatherForecast", "7-day forecast for scheduling", default_enabled=False),
    ),
    branding=GUARDIAN_DARK,
    tags=("operations", "project-management", "customer-update"),
    estimated_slides=4,
)

TEAM_PERFORMANCE = Template(
    id="team-performance",
    name="Team Performance Report",
    description="Team analytics for leadership meetings. Includes leaderboards, trends, and coaching opportunities.",
    audience="leadership",
    category="leadership",
    required_context=(
        ContextRequirement(type="team", required=False, label="Team/Region"),
        ContextRequirement(type="date-range", required=False, label="Report Period"),
    ),
    sections=(
        _section("title", "Performance Report", SlideType.TITLE, "getTeamReportTitleData", "Report period and team scope"),
        _section("kpi-summary", "Key Metrics", SlideType.STATS, "getTeamKPIStats", "Revenue, deals closed, conversion rate, avg deal size"),
        _section("revenue-trend", "Revenue Trend", SlideType.CHART, "getRevenueTrendData", "Weekly/monthly revenue progression"),
        _section("leaderboard", "Top Performers", SlideType.LIST, "getLeaderboardData", "Ranked rep performance"),
        _section("coaching-opportunities", "Coaching Opportunities", SlideType.LIST, "getCoachingOpportunities", "Areas for improvement", ai_enhanced=True),
        _section("pipeline-health", "Pipeline Health", SlideType.CHART, "getPipelineHealthData", "Deals by stage with conversion rates"),
        _section("insights", "Insights & Recommendations", SlideType.TALKING_POINTS, "generatePerformanceInsights", "Strategic recommendations", ai_enhanced=True, default_enabled=False),
    ),
    branding=GUARDIAN_DARK,
    tags=("leadership", "analytics", "team-management"),
    estimated_slides=6,
)

STORM_DEPLOYMENT = Template(
    id="storm-deployment",
    name="Storm Response Deployment Brief",
    description="Rapid deployment planning for post-storm canvassing. Includes affected areas, priority leads, and team assignments.",
    audience="manager",
    category="operations",
    required_context=(
        ContextRequirement(type="region", required=True, label="Affected Region"),
        ContextRequirement(type="date-range", required=False, label="Storm Date Range"),
    ),
    sections=(
        _section("title", "Storm Response Brief", SlideType.TITLE, "getStormBriefTitleData", "Storm event summary and response date"),
        _section("storm-stats", "Storm Impact Summary", SlideType.STATS, "getStormImpactStats", "Properties affected, severity, opportunity size"),
        _section("affected-map", "Affected Area Map", SlideType.MAP, "getAffectedAreaMap", "Geographic visualization of impact"),
        _section("priority-leads", "Priority Leads", SlideType.LIST, "getPriorityStormLeads", "Top opportunities ranked by score", ai_enhanced=True),
        _section("team-assignments", "Team Deployment Plan", SlideType.LIST, "getTeamAssignments", "Rep assignments based on location and capacity", ai_enhanced=True),
        _section("talking-points", "Storm Response Scripts", SlideType.TALKING_POINTS, "generateStormTalkingPoints", "Scripts for storm outreach", ai_enhanced=True),
        _section("logistics", "Logistics & Materials", SlideType.LIST, "getLogisticsChecklist", "Equipment and material checklist", default_enabled=False),
    ),
    branding=GUARDIAN_DARK,
    tags=("storm-response", "deployment", "urgent"),
    estimated_slides=6,
)

INSURANCE_PREP = Template(
    id="insurance-prep",
    name="Insurance Adjuster Prep Pack",
    description="Preparation for insurance adjuster meetings. Includes documentation checklist, carrier intel, and negotiation points.",
    audience="rep",
    category="sales",
    required_context=(ContextRequirement(type="customer", required=True, label="Customer/Claim"),),
    sections=(
        _section("title", "Adjuster Meeting Prep", SlideType.TITLE, "getInsurancePrepTitleData", "Customer, carrier, and meeting details"),
        _section("claim-overview", "Claim Overview", SlideType.STATS, "getClaimOverviewStats", "Claim number, filed date, estimated value"),
        _section("damage-documentation", "Documented Damage", SlideType.LIST, "getDamageDocumentation", "Itemized damage with photo references"),
        _section("carrier-intel", "Carrier Intelligence", SlideType.STATS, "getCarrierIntel", "Approval rates, common issues, adjuster patterns", ai_enhanced=True),
        _section("negotiation-points", "Key Negotiation Points", SlideType.TALKING_POINTS, "generateNegotiationPoints", "Points to maximize claim approval", ai_enhanced=True),
        _section("documentation-checklist", "Pre-Meeting Checklist", SlideType.LIST, "getDocumentationChecklist", "Required documents and preparations"),
    ),
    branding=GUARDIAN_DARK,
    tags=("insurance", "claims", "adjuster"),
    estimated_slides=5,
)

DAILY_BRIEFING = Template(
    id="daily-briefing",
    name="Daily Sales Briefing",
    description="Personalized morning briefing for sales reps. Includes priority customers, weather forecast, deals at risk, and generated talking points.",
    audience="rep",
    category="sales",
    required_context=(
        ContextRequirement(type="team", required=False, label="Sales Rep"),
        ContextRequirement(type="date-range", required=False, label="Date"),
    ),
    sections=(
        _section("title", "Morning Briefing", SlideType.TITLE, "getDailyBriefingTitleData", "Personalized greeting and date"),
        _section("daily-stats", "Your Day At-A-Glance", SlideType.STATS, "getDailyStats", "Scheduled calls, pending follow-ups, deals in pipeline"),
        _section("weather-outlook", "Weather & Storm Activity", SlideType.CHART, "getDailyWeatherForecast", "7-day forecast with storm opportunity alerts"),
        _section("priority-customers", "Priority Customers Today", SlideType.LIST, "getPriorityCustomersToday", "Ranked customers requiring immediate attention", ai_enhanced=True),
        _section("at-risk-deals", "Deals At Risk", SlideType.LIST, "getAtRiskDeals", "Deals that may be stalling or at risk of loss", ai_enhanced=True),
        _section("scheduled-calls", "Scheduled Calls & Meetings", SlideType.TIMELINE, "getScheduledCallsTimeline", "Today's appointments and call schedule"),
        _section("daily-talking-points", "Talking Points", SlideType.TALKING_POINTS, "generateDailyTalkingPoints", "Talking points for scheduled calls", ai_enhanced=True),
    ),
    branding=GUARDIAN_DARK,
    tags=("daily", "sales", "morning-prep", "productivity"),
    estimated_slides=6,
)

WEEKLY_PIPELINE = Template(
    id="weekly-pipeline",
    name="Weekly Pipeline Review",
    description="Manager's weekly pipeline review. Includes deals by stage, at-risk opportunities, forecasting, and coaching recommendations.",
    audience="manager",
    category="operations",
    required_context=(
        ContextRequirement(type="team", required=False, label="Team/Rep"),
        ContextRequirement(type="date-range", required=False, label="Review Period"),
    ),
    sections=(
        _section("title", "Pipeline Review", SlideType.TITLE, "getWeeklyPipelineTitleData", "Week of and team scope"),
        _section("pipeline-summary", "Pipeline Summary", SlideType.STATS, "getPipelineSummaryStats", "Total value, deal count, win probability, forecast"),
        _section("deals-by-stage", "Deals by Stage", SlideType.CHART, "getDealsByStageChart", "Visual pipeline breakdown by stage"),
        _section("stage-movements", "Week-over-Week Movement", SlideType.STATS, "getStageMovementStats", "Deals advanced, stalled, and closed this week"),
        _section("at-risk-opportunities", "At-Risk Opportunities", SlideType.LIST, "getAtRiskOpportunities", "Deals requiring intervention", ai_enhanced=True),
        _section("hot-deals", "Hot Deals to Close", SlideType.LIST, "getHotDealsToClose", "High-probability deals ready to close", ai_enhanced=True),
        _section("forecast", "Revenue Forecast", SlideType.CHART, "getRevenueForecastChart", "Projected revenue based on pipeline health", ai_enhanced=True),
        _section("coaching-recommendations", "Coaching Recommendations", SlideType.TALKING_POINTS, "generatePipelineCoachingPoints", "Coaching points for each rep", ai_enhanced=True),
    ),
    branding=GUARDIAN_DARK,
    tags=("pipeline", "forecasting", "management", "weekly"),
    estimated_slides=7,
)

MARKET_ANALYSIS = Template(
    id="market-analysis",
    name="Market Analysis Brief",
    description="Regional market intelligence for strategic planning. Includes storm trends, competitive landscape, and opportunity sizing.",
    audience="leadership",
    category="leadership",
    required_context=(
        ContextRequirement(type="region", required=False, label="Region"),
        ContextRequirement(type="date-range", required=False, label="Analysis Period"),
    ),
    sections=(
        _section("title", "Market Analysis", SlideType.TITLE, "getMarketAnalysisTitleData", "Region and analysis period"),
        _section("market-stats", "Market Overview", SlideType.STATS, "getMarketOverviewStats", "Total addressable market, penetration, growth"),
        _section("storm-activity", "Storm Activity Trends", SlideType.CHART, "getStormActivityTrend", "Storm frequency and severity over time"),
        _section("opportunity-map", "Opportunity Heat Map", SlideType.MAP, "getOpportunityHeatMap", "Geographic opportunity distribution"),
        _section("competitive-landscape", "Competitive Landscape", SlideType.COMPARISON, "getCompetitiveLandscape", "Competitor positioning", ai_enhanced=True),
        _section("strategic-recommendations", "Strategic Recommendations", SlideType.TALKING_POINTS, "generateStrategicRecommendations", "Strategic insights", ai_enhanced=True),
    ),
    branding=GUARDIAN_DARK,
    tags=("strategy", "market-intel", "planning"),
    estimated_slides=5,
)

COMPETITOR_ANALYSIS = Template(
    id="competitor-analysis",
    name="Competitive Intelligence Report",
    description="Competitive landscape analysis for a specific region. Includes win/loss analysis, pricing intel, and differentiation strategies.",
    audience="manager",
    category="leadership",
    required_context=(
        ContextRequirement(type="region", required=True, label="Market Region"),
        ContextRequirement(type="date-range", required=False, label="Analysis Period"),
    ),
    sections=(
        _section("title", "Competitive Intelligence", SlideType.TITLE, "getCompetitorAnalysisTitleData", "Region and analysis period overview"),
        _section("market-position", "Market Position Overview", SlideType.STATS, "getMarketPositionStats", "Market share, win rate, competitive density"),
        _section("competitor-map", "Competitor Landscape", SlideType.COMPARISON, "getCompetitorLandscapeData", "Key competitors with strengths and weaknesses"),
        _section("win-loss-analysis", "Win/Loss Analysis", SlideType.CHART, "getWinLossAnalysisData", "Win/loss breakdown by competitor and reason"),
        _section("pricing-intel", "Pricing Intelligence", SlideType.STATS, "getPricingIntelData", "Competitive pricing trends and benchmarks"),
        _section("loss-reasons", "Top Loss Reasons", SlideType.LIST, "getTopLossReasons", "Reasons for lost deals", ai_enhanced=True),
        _section("differentiation-strategy", "Competitive Differentiation", SlideType.TALKING_POINTS, "generateDifferentiationStrategy", "Competitive positioning and battle cards", ai_enhanced=True),
        _section("action-items", "Recommended Actions", SlideType.LIST, "getCompetitiveActionItems", "Actions to improve competitive position", ai_enhanced=True, default_enabled=False),
    ),
    branding=GUARDIAN_DARK,
    tags=("competitive-intel", "strategy", "market-analysis"),
    estimated_slides=7,
)

STORM_POSTMORTEM = Template(
    id="storm-postmortem",
    name="Storm Response Post-Mortem",
    description="After-action report for completed storm response campaigns. Includes leads generated, deals closed, lessons learned, and comparison to previous storms.",
    audience="leadership",
    category="leadership",
    required_context=(
        ContextRequirement(type="region", required=True, label="Storm Region"),
        ContextRequirement(type="date-range", required=True, label="Storm Event Period"),
    ),
    sections=(
        _section("title", "Storm Post-Mortem", SlideType.TITLE, "getStormPostmortemTitleData", "Storm event name, region, and date range"),
        _section("response-summary", "Response Summary", SlideType.STATS, "getStormResponseSummaryStats", "Total leads, inspections, deals closed, revenue"),
        _section("performance-chart", "Performance Over Time", SlideType.CHART, "getStormPerformanceChart", "Daily/weekly performance during storm response"),
        _section("conversion-funnel", "Conversion Funnel", SlideType.CHART, "getStormConversionFunnel", "Lead to close conversion breakdown"),
        _section("rep-performance", "Rep Performance Breakdown", SlideType.LIST, "getStormRepPerformance", "Individual rep performance during storm response"),
        _section("historical-comparison", "Historical Storm Comparison", SlideType.COMPARISON, "getHistoricalStormComparison", "Performance vs previous storm events"),
        _section("lessons-learned", "Lessons Learned", SlideType.LIST, "getStormLessonsLearned", "Successes and areas for improvement", ai_enhanced=True),
        _section("recommendations", "Strategic Recommendations", SlideType.TALKING_POINTS, "generateStormPostmortemRecommendations", "Improvements for future storm responses", ai_enhanced=True),
    ),
    branding=GUARDIAN_DARK,
    tags=("storm-response", "post-mortem", "analytics", "leadership"),
    estimated_slides=8,
)

CUSTOMER_PROPOSAL = Template(
    id="customer-proposal",
    name="Customer Proposal",
    description="Customer-facing proposal deck with property assessment, scope of work, pricing options, and company credentials.",
    audience="customer",
    category="customer-facing",
    required_context=(
        ContextRequirement(type="customer", required=True, label="Customer"),
        ContextRequirement(type="project", required=False, label="Project/Estimate"),
    ),
    sections=(
        _section("title", "Proposal Cover", SlideType.TITLE, "getProposalTitleData", "Customer name, property address, date"),
        _section("company-intro", "About Guardian Storm Repair", SlideType.STATS, "getCompanyCredentialsStats", "Years in business, projects completed, certifications"),
        _section("property-assessment", "Property Assessment", SlideType.IMAGE, "getPropertyAssessmentData", "Property photos and damage assessment summary"),
        _section("scope-of-work", "Scope of Work", SlideType.LIST, "getScopeOfWorkData", "Detailed work items and materials"),
        _section("pricing-options", "Investment Options", SlideType.COMPARISON, "getPricingOptionsData", "Good/Better/Best pricing tiers"),
        _section("financing", "Financing Options", SlideType.STATS, "getFinancingOptionsData", "Payment plans and financing terms"),
        _section("testimonials", "Customer Success Stories", SlideType.LIST, "getTestimonialsData", "Reviews and testimonials from satisfied customers"),
        _section("warranty", "Our Guarantee", SlideType.LIST, "getWarrantyData", "Warranty coverage and satisfaction guarantee"),
        _section("next-steps", "Next Steps", SlideType.TIMELINE, "getProposalNextSteps", "Project timeline and how to proceed"),
    ),
    branding=GUARDIAN_LIGHT,
    tags=("customer-facing", "proposal", "sales"),
    estimated_slides=8,
)

# Homeowner copy of the project timeline: same sections, light branding.
PROJECT_TIMELINE_CUSTOMER = replace(
    PROJECT_TIMELINE,
    id="project-timeline-customer",
    name="Project Update (Customer)",
    description="Professional project status update for homeowners.",
    audience="customer",
    category="customer-facing",
    branding=GUARDIAN_LIGHT,
)

DECK_TEMPLATES: tuple[Template, ...] = (
    # sales & field
    CUSTOMER_CHEAT_SHEET,
    DAILY_BRIEFING,
    # operations
    PROJECT_TIMELINE,
    PROJECT_TIMELINE_CUSTOMER,
    STORM_DEPLOYMENT,
    WEEKLY_PIPELINE,
    # leadership
    INSURANCE_PREP,
    TEAM_PERFORMANCE,
    MARKET_ANALYSIS,
    COMPETITOR_ANALYSIS,
    STORM_POSTMORTEM,
    # customer-facing
    CUSTOMER_PROPOSAL,
)

TEMPLATE_CATEGORIES: tuple[TemplateCategory, ...] = (
    TemplateCategory(id="sales", name="Sales & Field", icon="Target"),
    TemplateCategory(id="operations", name="Operations", icon="Settings"),
    TemplateCategory(id="leadership", name="Leadership", icon="Crown"),
    TemplateCategory(id="customer-facing", name="Customer-Facing", icon="Users"),
)


_BY_ID = {template.id: template for template in DECK_TEMPLATES}


def get_template_by_id(template_id: str) -> Template | None:
    return _BY_ID.get(template_id)


def list_templates(*, audience: str | None = None, category: str | None = None, tag: str | None = None) -> list[Template]:
    rows = list(DECK_TEMPLATES)
    if audience:
        rows = [row for row in rows if row.audience == audience]
    if category:
        rows = [row for row in rows if row.category == category]
    if tag:
        rows = [row for row in rows if tag in row.tags]
    return rows


def list_template_categories() -> list[dict[str, object]]:
    """Categories in display order, each with the ids of its templates."""
    return [
        {**category.to_dict(), "template_ids": [row.id for row in DECK_TEMPLATES if row.category == category.id]}
        for category in TEMPLATE_CATEGORIES
    ]
