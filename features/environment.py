# features/environment.py
import sys
import time
from pathlib import Path

# Project root, so the suite runs with or without an editable install
sys.path.insert(0, str(Path(__file__).parent.parent.absolute()))

from scenario.context import ScenarioContext
from utils.config_loader import config_loader
from utils.logger import logger, test_logger, log_test_result


def before_all(context):
    """Setup before all tests."""
    logger.info("Starting API test execution")
    context.test_start_time = time.time()

    context.api_config = config_loader.get_api_config()
    logger.info(f"Target API: {context.api_config.base_url} "
                f"(request timeout {context.api_config.timeout}s, "
                f"step timeout {context.api_config.step_timeout}s)")

    context.test_config = {
        'start_time': context.test_start_time,
        'total_scenarios': 0,
        'passed_scenarios': 0,
        'failed_scenarios': 0
    }


def before_feature(context, feature):
    """Setup before each feature."""
    logger.info(f"Starting feature: {feature.name}")
    context.feature_start_time = time.time()

    context.feature_scenarios = 0
    context.feature_passed = 0
    context.feature_failed = 0


def before_scenario(context, scenario):
    """Give every scenario its own client, variables and response slot."""
    test_logger.info(f"Starting scenario: {scenario.name}")
    context.scenario_start_time = time.time()
    context.scenario_ctx = ScenarioContext.create(context.api_config)
    context.last_step_error = None


def after_step(context, step):
    """Log step execution details."""
    if step.status.name in ("failed", "error"):
        test_logger.error(f"Step {step.status.name}: {step.keyword} {step.name}")
        if getattr(step, 'exception', None):
            test_logger.error(f"Exception: {step.exception}")
        context.last_step_error = str(getattr(step, 'exception', None) or "Unknown error")
    elif step.status.name == "undefined":
        test_logger.error(f"Undefined step: {step.keyword} {step.name}")


def after_scenario(context, scenario):
    """Dispose the scenario's client and record the outcome."""
    scenario_duration = time.time() - context.scenario_start_time

    context.test_config['total_scenarios'] += 1
    context.feature_scenarios += 1

    if scenario.status.name == "passed":
        context.test_config['passed_scenarios'] += 1
        context.feature_passed += 1
    else:
        context.test_config['failed_scenarios'] += 1
        context.feature_failed += 1
        if context.last_step_error:
            test_logger.error(f"Last error: {context.last_step_error}")
    log_test_result(scenario.name, scenario.status.name, duration=f"{scenario_duration:.2f}s")

    scenario_ctx = getattr(context, 'scenario_ctx', None)
    if scenario_ctx is not None:
        scenario_ctx.close()
        context.scenario_ctx = None


def after_feature(context, feature):
    """Log feature summary."""
    feature_duration = time.time() - context.feature_start_time

    logger.info(f"Feature completed: {feature.name} (Duration: {feature_duration:.2f}s)")
    logger.info(f"Feature stats - Total: {context.feature_scenarios}, "
                f"Passed: {context.feature_passed}, Failed: {context.feature_failed}")


def after_all(context):
    """Log test execution summary."""
    total_duration = time.time() - context.test_start_time

    logger.info("=" * 60)
    logger.info("TEST EXECUTION SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total duration: {total_duration:.2f}s")
    logger.info(f"Total scenarios: {context.test_config['total_scenarios']}")
    logger.info(f"Passed scenarios: {context.test_config['passed_scenarios']}")
    logger.info(f"Failed scenarios: {context.test_config['failed_scenarios']}")

    if context.test_config['total_scenarios'] > 0:
        pass_rate = (context.test_config['passed_scenarios'] / context.test_config['total_scenarios']) * 100
        logger.info(f"Pass rate: {pass_rate:.1f}%")

    logger.info("=" * 60)
