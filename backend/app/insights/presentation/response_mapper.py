from typing import Any, Dict

from app.insights.application.use_cases import MonthlyReport
from app.insights.domain.queries import DashboardMetrics


def dashboard_to_response(metrics: DashboardMetrics) -> Dict[str, Any]:
    return {
        "awaiting_my_action": metrics.awaiting_my_action,
        "total_pending_spend": metrics.total_pending_spend,
        "completed_this_month": metrics.completed_this_month,
        "overpriced_items": [
            {
                "request_id": item.request_id,
                "reference_number": item.reference_number,
                "item_name": item.item_name,
                "price": item.price,
                "market_price_comparison": item.market_price_comparison,
            }
            for item in metrics.overpriced_items
        ],
    }


def monthly_report_to_response(report: MonthlyReport) -> Dict[str, Any]:
    summary = report.summary
    return {
        "branch_id": summary.branch_id,
        "branch_name": report.branch_name,
        "month": report.month_label,
        "year": summary.year,
        "total_spend": summary.total_spend,
        "request_count": summary.request_count,
        "department_breakdown": [
            {"department": spend.department, "total": spend.total, "count": spend.count}
            for spend in summary.department_breakdown
        ],
        "requests": [
            {
                "id": request.id,
                "reference_number": request.reference_number,
                "department": request.department,
                "total_estimated_cost": request.total_estimated_cost,
            }
            for request in summary.requests
        ],
        "ai_analysis": report.ai_analysis,
    }
