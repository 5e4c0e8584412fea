"""Static reference data: categories, default questions, and the improvement catalog.

The improvement catalog follows the SCOR model (Plan / Source / Make / Deliver /
Enable) and is grouped into four areas:

- ``scor``: core process optimization
- ``data``: data-driven problem solving (root cause analysis, dashboards)
- ``esg``: ESG and supply-chain risk management
- ``strategic``: strategic maturity (roadmap, talent, automation, digital)

Items in the ``strategic`` area form the *strategic tier* that low-maturity
respondents always receive.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

MAX_SCORE = 5
MIN_SCORE = 1


@dataclass(frozen=True)
class CategoryDef:
    id: int
    key: str
    title: str


@dataclass(frozen=True)
class QuestionDef:
    id: str
    category_key: str
    text: str
    weight: int = 3


@dataclass(frozen=True)
class ImprovementItem:
    id: str
    area: str
    area_key: str
    category: str
    category_key: str
    title: str
    description: str
    actions: tuple[str, ...]
    kpis: tuple[str, ...]
    priority: str  # high | medium | low
    score_threshold: float  # recommend when category score <= threshold


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

CATEGORIES: tuple[CategoryDef, ...] = (
    CategoryDef(1, "planning", "Planning Management"),
    CategoryDef(2, "procurement", "Procurement Management"),
    CategoryDef(3, "inventory", "Inventory Management"),
    CategoryDef(4, "production", "Production Management"),
    CategoryDef(5, "logistics", "Logistics Management"),
    CategoryDef(6, "integration", "Integration Management"),
)

CATEGORY_KEYS: tuple[str, ...] = tuple(c.key for c in CATEGORIES)
CATEGORY_NAMES: dict[str, str] = {c.key: c.title for c in CATEGORIES}


# ---------------------------------------------------------------------------
# Default question set (seeded into an empty database)
# ---------------------------------------------------------------------------

DEFAULT_QUESTIONS: tuple[QuestionDef, ...] = (
    # Planning
    QuestionDef("planning_1", "planning", "Demand forecasts are produced on a fixed cycle using historical sales data.", 4),
    QuestionDef("planning_2", "planning", "Forecast accuracy is measured (e.g. MAPE) and reviewed with the business.", 3),
    QuestionDef("planning_3", "planning", "A regular S&OP meeting aligns sales, production, purchasing and logistics plans.", 5),
    QuestionDef("planning_4", "planning", "Plans are adjusted promptly when demand or supply conditions change.", 3),
    # Procurement
    QuestionDef("procurement_1", "procurement", "Suppliers are evaluated periodically on quality, price, delivery and service.", 4),
    QuestionDef("procurement_2", "procurement", "The purchase-to-pay process is documented and approval rules are defined.", 3),
    QuestionDef("procurement_3", "procurement", "Critical items have qualified alternative or dual sources.", 4),
    QuestionDef("procurement_4", "procurement", "Purchasing spend is analysed and savings targets are tracked.", 3),
    # Inventory
    QuestionDef("inventory_1", "inventory", "Items are classified (e.g. ABC) and managed with differentiated policies.", 3),
    QuestionDef("inventory_2", "inventory", "Safety stock and reorder points are calculated rather than set by feel.", 4),
    QuestionDef("inventory_3", "inventory", "Inventory accuracy is verified by regular cycle counts.", 3),
    QuestionDef("inventory_4", "inventory", "Slow-moving and obsolete stock is identified and acted upon.", 3),
    # Production
    QuestionDef("production_1", "production", "Production schedule adherence is monitored against the plan.", 4),
    QuestionDef("production_2", "production", "Bottleneck processes are identified and improved systematically.", 3),
    QuestionDef("production_3", "production", "Inspection standards exist for incoming, in-process and outgoing goods.", 4),
    QuestionDef("production_4", "production", "Equipment effectiveness (OEE) is measured and improved.", 3),
    # Logistics
    QuestionDef("logistics_1", "logistics", "On-time, in-full delivery performance is measured for every order.", 5),
    QuestionDef("logistics_2", "logistics", "Shipments can be tracked from dispatch to customer receipt.", 3),
    QuestionDef("logistics_3", "logistics", "Logistics costs are broken down by transport, storage and handling.", 3),
    QuestionDef("logistics_4", "logistics", "Warehouse operations are supported by a WMS or equivalent tooling.", 3),
    # Integration
    QuestionDef("integration_1", "integration", "Departments share supply-chain data through integrated systems (ERP/API/EDI).", 5),
    QuestionDef("integration_2", "integration", "Master data (items, suppliers, customers) has clear ownership and quality rules.", 4),
    QuestionDef("integration_3", "integration", "Supply-chain KPIs are visible on a shared dashboard.", 3),
    QuestionDef("integration_4", "integration", "Supply-chain operating rules and SOPs are documented and audited.", 3),
)


# ---------------------------------------------------------------------------
# Improvement catalog
# ---------------------------------------------------------------------------

_SCOR = "Core Process Optimization"
_DATA = "Data-Driven Problem Solving"
_ESG = "ESG & Risk Management"
_STRATEGIC = "Strategic Maturity"

SCOR_ITEMS: tuple[ImprovementItem, ...] = (
    # Plan
    ImprovementItem(
        id="scor_plan_01", area=_SCOR, area_key="scor",
        category="Plan", category_key="planning",
        title="Improve demand forecast accuracy",
        description="Strengthen demand forecasting to balance supply and demand.",
        actions=(
            "Introduce a statistical forecast model based on historical sales",
            "Build forecast scenarios that include market trends and external drivers",
            "Monitor forecast error with MAPE and MAD",
            "Hold weekly or monthly demand review meetings",
            "Evaluate AI/ML-based forecasting solutions",
        ),
        kpis=("Forecast accuracy (MAPE)", "Stockout rate", "Excess inventory ratio"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_plan_02", area=_SCOR, area_key="scor",
        category="Plan", category_key="planning",
        title="Formalize the S&OP process",
        description="Run Sales & Operations Planning systematically to align departments.",
        actions=(
            "Set up a monthly S&OP forum with operating rules",
            "Share data between sales, production, purchasing and logistics",
            "Establish a demand-supply gap analysis routine",
            "Define escalation criteria for S&OP decisions",
            "Monitor the plan on an integrated dashboard",
        ),
        kpis=("S&OP plan attainment", "Cross-department plan consistency", "Decision lead time"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_plan_03", area=_SCOR, area_key="scor",
        category="Plan", category_key="planning",
        title="Optimize inventory planning",
        description="Keep inventory at the right level while minimizing holding cost.",
        actions=(
            "Differentiate inventory policies using ABC classification",
            "Define safety stock calculation rules",
            "Automate reorder point (ROP) calculation",
            "Set and monitor inventory turnover targets",
            "Establish a process for idle and obsolete stock",
        ),
        kpis=("Inventory turnover", "Days of inventory", "Inventory accuracy"),
        priority="medium", score_threshold=3.0,
    ),
    # Source
    ImprovementItem(
        id="scor_source_01", area=_SCOR, area_key="scor",
        category="Source", category_key="procurement",
        title="Build a supplier management system",
        description="Create a structured process to evaluate, select and manage suppliers.",
        actions=(
            "Define supplier evaluation criteria (quality, price, delivery, service)",
            "Run quarterly or half-yearly supplier reviews",
            "Operate a strategic partnership program for key suppliers",
            "Assess supplier risk and prepare responses",
            "Standardize onboarding of new suppliers",
        ),
        kpis=("Supplier on-time delivery", "Supplier quality acceptance rate", "Supplier diversification ratio"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_source_02", area=_SCOR, area_key="scor",
        category="Source", category_key="procurement",
        title="Standardize the purchasing process",
        description="Standardize and automate the flow from purchase request to payment.",
        actions=(
            "Define the standard procure-to-pay (P2P) process",
            "Evaluate an e-procurement system",
            "Set purchase approval authorities",
            "Introduce contract lifecycle management (CLM)",
            "Analyse purchasing cost and set savings targets",
        ),
        kpis=("Purchasing lead time", "Purchasing cost savings", "PO automation rate"),
        priority="medium", score_threshold=3.0,
    ),
    ImprovementItem(
        id="scor_source_03", area=_SCOR, area_key="scor",
        category="Source", category_key="procurement",
        title="Define a multi-sourcing strategy",
        description="Diversify sourcing to spread supply risk.",
        actions=(
            "Set dual or multi-sourcing policies for critical items",
            "Analyse and diversify the regional supply base",
            "Review near-shoring options",
            "Maintain a database of alternative sources",
            "Prepare an emergency sourcing process",
        ),
        kpis=("Single-source ratio", "Supply disruption count", "Alternative source coverage"),
        priority="medium", score_threshold=3.0,
    ),
    # Make
    ImprovementItem(
        id="scor_make_01", area=_SCOR, area_key="scor",
        category="Make", category_key="production",
        title="Advance production schedule management",
        description="Raise schedule adherence and shorten lead times.",
        actions=(
            "Monitor production output against the plan",
            "Analyse and relieve bottleneck processes",
            "Introduce or upgrade a manufacturing execution system (MES)",
            "Improve processes to reduce production lead time",
            "Monitor and improve OEE",
        ),
        kpis=("Schedule adherence", "Manufacturing lead time", "OEE"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_make_02", area=_SCOR, area_key="scor",
        category="Make", category_key="production",
        title="Strengthen quality management",
        description="Build a systematic quality process that assures product quality.",
        actions=(
            "Set incoming, in-process and outgoing inspection standards",
            "Introduce statistical process control (SPC)",
            "Establish defect root cause analysis (5 Whys, fishbone)",
            "Measure and manage cost of quality (COQ)",
            "Run a supplier quality program",
        ),
        kpis=("Defect rate", "In-process defect rate", "Customer claims", "Cost of quality ratio"),
        priority="medium", score_threshold=3.0,
    ),
    # Deliver
    ImprovementItem(
        id="scor_deliver_01", area=_SCOR, area_key="scor",
        category="Deliver", category_key="logistics",
        title="Improve on-time delivery",
        description="Optimize order management, transport and distribution for on-time delivery.",
        actions=(
            "Standardize the order-to-cash (OTC) process",
            "Introduce or upgrade a transport management system (TMS)",
            "Optimize delivery routes",
            "Make last-mile delivery more efficient",
            "Analyse and fix causes of late deliveries",
        ),
        kpis=("OTIF", "Order-to-delivery lead time", "Delivery cost ratio"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_deliver_02", area=_SCOR, area_key="scor",
        category="Deliver", category_key="logistics",
        title="Reduce logistics cost",
        description="Analyse and cut transport, storage and handling costs.",
        actions=(
            "Analyse logistics cost by line item",
            "Optimize transport modes",
            "Make warehouse operations efficient (introduce a WMS)",
            "Evaluate 3PL outsourcing effectiveness",
            "Build an integrated logistics cost dashboard",
        ),
        kpis=("Logistics cost to sales", "Transport unit cost", "Warehouse utilization"),
        priority="medium", score_threshold=3.0,
    ),
    # Enable
    ImprovementItem(
        id="scor_enable_01", area=_SCOR, area_key="scor",
        category="Enable", category_key="integration",
        title="Build an integrated SCM information system",
        description="Gain end-to-end visibility with an integrated supply-chain system.",
        actions=(
            "Assess and improve use of the ERP SCM modules",
            "Connect departmental data via API/EDI",
            "Build a real-time supply-chain visibility dashboard",
            "Establish master data management (MDM)",
            "Set up an SCM control tower",
        ),
        kpis=("System integration rate", "Data accuracy", "Information lookup response time"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="scor_enable_02", area=_SCOR, area_key="scor",
        category="Enable", category_key="integration",
        title="Manage business rules and compliance",
        description="Manage supply-chain business rules and regulatory compliance systematically.",
        actions=(
            "Document SCM operating rules and SOPs",
            "Operate a compliance checklist",
            "Plan and run an internal audit program",
            "Set up trade and customs compliance",
            "Define data security and privacy policies",
        ),
        kpis=("Compliance rate", "Audit findings", "SOP adherence"),
        priority="low", score_threshold=2.5,
    ),
)

DATA_ITEMS: tuple[ImprovementItem, ...] = (
    ImprovementItem(
        id="data_rca_01", area=_DATA, area_key="data",
        category="Root Cause Analysis", category_key="logistics",
        title="Root cause analysis for delivery delays",
        description="Find and remove the root causes of late deliveries such as supplier "
                    "bottlenecks, inaccurate lead times and slow document flow.",
        actions=(
            "Classify delay types and collect delay data",
            "Monitor supplier lead time accuracy",
            "Analyse bottlenecks in the order-to-shipment process",
            "Digitize document flow (customs, invoices)",
            "Define an escalation process for delays",
        ),
        kpis=("Late delivery rate", "Delay share by cause", "Mean time to resolve delays"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="data_rca_02", area=_DATA, area_key="data",
        category="Root Cause Analysis", category_key="planning",
        title="Stockout prevention",
        description="Prevent stockouts caused by demand planning failures or supply misalignment.",
        actions=(
            "Analyse historical stockout data",
            "Analyse demand variability and recalculate safety stock",
            "Monitor supplier delivery variability",
            "Build multi-echelon inventory visibility",
            "Introduce automatic reorder alerts",
        ),
        kpis=("Stockout frequency", "Fill rate", "Stockout cost"),
        priority="high", score_threshold=3.0,
    ),
    ImprovementItem(
        id="data_rca_03", area=_DATA, area_key="data",
        category="Root Cause Analysis", category_key="planning",
        title="Reduce forecast error",
        description="Prevent cost increases and service loss caused by inaccurate forecasts.",
        actions=(
            "Establish forecast error measures (MAPE, bias)",
            "Classify and analyse causes of forecast error",
            "Review and update forecast models regularly",
            "Introduce collaborative forecasting",
            "Set a separate process for new product and promotion forecasts",
        ),
        kpis=("Forecast accuracy (MAPE)", "Forecast bias", "Forecast value added (FVA)"),
        priority="medium", score_threshold=3.5,
    ),
    ImprovementItem(
        id="data_dash_01", area=_DATA, area_key="data",
        category="Dashboard Monitoring", category_key="integration",
        title="Build an SCM performance dashboard",
        description="Monitor key supply-chain indicators in real time.",
        actions=(
            "Define key KPIs and connect data sources",
            "Supplier performance dashboard (PO count, delivery, lead time)",
            "Inventory dashboard (opening/closing stock, by region)",
            "Delivery performance dashboard (on-time rate, cost)",
            "Implement anomaly alerts",
        ),
        kpis=("Dashboard usage frequency", "Anomaly detection rate", "KPI attainment"),
        priority="medium", score_threshold=3.0,
    ),
)

ESG_ITEMS: tuple[ImprovementItem, ...] = (
    ImprovementItem(
        id="esg_eval_01", area=_ESG, area_key="esg",
        category="Supplier ESG Assessment", category_key="procurement",
        title="Supplier ESG assessment",
        description="Assess suppliers' environmental, social and governance risks and support improvement.",
        actions=(
            "Develop supplier ESG criteria and checklists",
            "Assess environmental management (waste, hazardous substances)",
            "Assess social risk (labour, human rights, health and safety)",
            "Assess governance (ethics, anti-corruption)",
            "Provide ESG improvement guidelines and training",
        ),
        kpis=("Supplier ESG assessment completion", "High-risk supplier ratio", "ESG improvement follow-through"),
        priority="medium", score_threshold=3.0,
    ),
    ImprovementItem(
        id="esg_carbon_01", area=_ESG, area_key="esg",
        category="Carbon Emissions", category_key="integration",
        title="Scope 1/2/3 emissions management",
        description="Measure emissions across the supply chain and set reduction targets.",
        actions=(
            "Measure Scope 1 (direct) emissions",
            "Measure Scope 2 (purchased electricity) emissions",
            "Map Scope 3 (value chain) emissions",
            "Set reduction targets (SBTi)",
            "Collect emissions data from key suppliers",
        ),
        kpis=("Total emissions", "Emission reduction rate", "Scope 3 data coverage"),
        priority="medium", score_threshold=3.0,
    ),
    ImprovementItem(
        id="esg_resilience_01", area=_ESG, area_key="esg",
        category="Resilience", category_key="procurement",
        title="Supply-chain risk management and BCP",
        description="Strengthen resilience against disasters, pandemics and other disruptions.",
        actions=(
            "Map supply-chain risks and run scenario analysis",
            "Write a business continuity plan (BCP)",
            "Review safety stock policy",
            "Execute multi-sourcing and near-shoring",
            "Run disruption simulation exercises",
        ),
        kpis=("Identified risks", "BCP tests run", "Recovery time objective (RTO)"),
        priority="high", score_threshold=3.5,
    ),
    ImprovementItem(
        id="esg_transparency_01", area=_ESG, area_key="esg",
        category="Transparency", category_key="integration",
        title="Value-chain transparency",
        description="Manage information transparently across the value chain and align stakeholders.",
        actions=(
            "Map multi-tier suppliers (Tier 1, 2, 3)",
            "Set up stakeholder communication",
            "Build a supply-chain information sharing platform",
            "Introduce traceability",
            "Publish a regular supply-chain transparency report",
        ),
        kpis=("Supplier mapping completion by tier", "Timeliness of information sharing", "Traceable item ratio"),
        priority="low", score_threshold=2.5,
    ),
)

STRATEGIC_ITEMS: tuple[ImprovementItem, ...] = (
    ImprovementItem(
        id="strat_maturity_01", area=_STRATEGIC, area_key="strategic",
        category="Maturity Roadmap", category_key="integration",
        title="SCM maturity roadmap",
        description="Diagnose maturity across IT, collaboration and performance management and plan a roadmap.",
        actions=(
            "Analyse as-is maturity results and gaps",
            "Set the to-be maturity target",
            "Plan a 6-month, 1-year and 3-year roadmap",
            "Derive and prioritize improvement initiatives per category",
            "Re-assess maturity quarterly to measure progress",
        ),
        kpis=("Maturity level change", "Initiative completion", "Return on investment"),
        priority="high", score_threshold=4.0,
    ),
    ImprovementItem(
        id="strat_talent_01", area=_STRATEGIC, area_key="strategic",
        category="Talent & Capability", category_key="integration",
        title="SCM talent and training",
        description="Attract and develop people with digital skills and SCM expertise.",
        actions=(
            "Define competency models per SCM role",
            "Develop internal and external SCM training",
            "Train digital SCM skills (AI, data analysis)",
            "Support professional certification (APICS CSCP/CPIM)",
            "Design career paths to retain key talent",
        ),
        kpis=("Training completion", "Competency score improvement", "Key talent attrition"),
        priority="medium", score_threshold=3.0,
    ),
    ImprovementItem(
        id="strat_automation_01", area=_STRATEGIC, area_key="strategic",
        category="Process Mining & Automation", category_key="integration",
        title="Process mining and automation",
        description="Detect operational constraints such as bottlenecks and waiting time automatically.",
        actions=(
            "Mine core processes (order handling, sourcing, delivery)",
            "Detect bottlenecks and waiting time automatically",
            "Select RPA candidates",
            "Implement workflow automation",
            "Monitor process efficiency continuously",
        ),
        kpis=("Process cycle time", "Automation rate", "Process efficiency gain"),
        priority="medium", score_threshold=3.0,
    ),
    ImprovementItem(
        id="strat_digital_01", area=_STRATEGIC, area_key="strategic",
        category="Digital Transformation", category_key="integration",
        title="SCM digital transformation strategy",
        description="Plan how AI, IoT and blockchain will advance the supply chain.",
        actions=(
            "Assess digital maturity",
            "Prioritize digital use cases",
            "Run a pilot and measure results",
            "Scale successful pilots",
            "Review the technology roadmap yearly",
        ),
        kpis=("Digital maturity level", "Share of digitally enabled processes", "IT investment return"),
        priority="low", score_threshold=2.5,
    ),
)

IMPROVEMENT_ITEMS: tuple[ImprovementItem, ...] = SCOR_ITEMS + DATA_ITEMS + ESG_ITEMS + STRATEGIC_ITEMS

STRATEGIC_AREA = "strategic"


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def display_score(score: float | None) -> float | None:
    """Round half-up to one decimal. Used for display only, never for storage."""
    if score is None:
        return None
    return float(Decimal(str(score)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def round_half_up(value: float, digits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def category_name(key: str) -> str:
    return CATEGORY_NAMES.get(key, key)
