"""Engine package for the bounded deck composition pipeline modules."""

__all__ = [
    "bounded_retry_v1",
    "cancellation_v1",
    "category_generator_v1",
    "composition_planner_v1",
    "constants",
    "count_reconciler_v1",
    "legality_validator_v1",
    "oracle_contract_v1",
    "oracle_openai_v1",
    "pipeline_compose",
    "repair_engine_v1",
    "request_models_v1",
    "strategy_selector_v1",
    "utils",
]
