from regimelab.portfolio.allocation import (
    FinalPositions,
    PortfolioMetrics,
    allocate_by_kelly,
    allocate_by_risk_parity,
    allocate_by_sharpe,
    allocate_portfolio_positions,
    allocate_positions,
    allocate_with_correlation_adjustment,
    calculate_portfolio_metrics,
    generate_final_positions,
)

__all__ = [
    "FinalPositions",
    "PortfolioMetrics",
    "allocate_by_kelly",
    "allocate_by_risk_parity",
    "allocate_by_sharpe",
    "allocate_portfolio_positions",
    "allocate_positions",
    "allocate_with_correlation_adjustment",
    "calculate_portfolio_metrics",
    "generate_final_positions",
]
