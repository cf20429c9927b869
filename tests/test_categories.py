"""Tests for task/goal classification, sufficiency and forcing rules."""

import pytest

from taskcrew.crew.categories import (
    CATEGORY_RULES,
    DEPLOY_TARGET_CAPABILITIES,
    DEPLOY_TARGET_CATEGORY,
    DevSpecialty,
    DeployTarget,
    GoalCategory,
    TaskCategory,
    check_sufficiency,
    classify_goal,
    classify_task,
    detect_deploy_target,
    detect_template_type,
    extract_project_name,
    extract_section,
    forced_capability,
    has_deploy_intent,
    is_build_request,
    is_customize_task,
    is_new_project_goal,
    is_scaffold_task,
    select_dev_specialty,
)
from taskcrew.crew.tasks import InvocationRecord, TaskKind, create_task


def _task(title, description="", kind=TaskKind.IMPLEMENT, **context):
    return create_task(kind, title, description or title, "pm", context=context)


def _record(*names):
    record = InvocationRecord()
    for name in names:
        record.record(name, True)
    return record


class TestClassifyTask:

    @pytest.mark.parametrize("title,expected", [
        ("Scaffold Project", TaskCategory.SCAFFOLD),
        ("Containerize the API with Docker", TaskCategory.CONTAINER),
        ("Deploy to railway", TaskCategory.DEPLOY),
        ("Add a new route for users", TaskCategory.CUSTOMIZE),
        ("Write greeting module", TaskCategory.GENERAL),
    ])
    def test_keyword_classification(self, title, expected):
        assert classify_task(_task(title)) == expected

    def test_explicit_category_wins(self):
        task = _task("Scaffold Project", category="customize")
        assert classify_task(task) == TaskCategory.CUSTOMIZE

    def test_unknown_explicit_category_is_ignored(self):
        assert classify_task(_task("Scaffold Project", category="bogus")) == TaskCategory.SCAFFOLD

    def test_verification_kind(self):
        assert classify_task(_task("Run tests", kind=TaskKind.VERIFY)) == TaskCategory.VERIFY

    def test_scaffold_detection(self):
        assert is_scaffold_task(_task("Create a new application for notes"))
        assert not is_scaffold_task(_task("Customize the new app header"))

    def test_customize_detection(self):
        assert is_customize_task(_task("Create login component"))
        assert is_customize_task(_task("Update src/App.tsx"))
        assert not is_customize_task(_task("Write greeting module"))

    def test_new_project_goal(self):
        assert is_new_project_goal("Build a new project for invoices")
        assert not is_new_project_goal("Fix the header colour")

    def test_existing_project_is_not_scaffolded(self):
        goal = "Add a login page to the existing web app"
        assert not is_new_project_goal(goal)
        assert not is_scaffold_task(_task(goal))
        assert not is_scaffold_task(_task("Add a navbar to the current fullstack app"))
        assert is_scaffold_task(_task("Scaffold the existing folder with generate_project"))

    def test_deploy_task_mentioning_an_app_kind(self):
        # without a pinned category, app wording reads as a new project
        assert classify_task(_task("Deploy my todo app to azure")) == TaskCategory.SCAFFOLD
        for target, category in DEPLOY_TARGET_CATEGORY.items():
            task = _task("Deploy my todo app", category=category.value)
            assert classify_task(task) == category
            assert CATEGORY_RULES[category].required & set(DEPLOY_TARGET_CAPABILITIES[target])


class TestSufficiency:

    def test_container_requires_generation_or_write(self):
        assert not check_sufficiency(TaskCategory.CONTAINER, _record()).sufficient
        assert not check_sufficiency(TaskCategory.CONTAINER, _record("read_file")).sufficient
        assert check_sufficiency(TaskCategory.CONTAINER, _record("write_file")).sufficient
        assert check_sufficiency(TaskCategory.CONTAINER, _record("generate_deployment")).sufficient

    def test_scaffold_requires_generate_project(self):
        result = check_sufficiency(TaskCategory.SCAFFOLD, _record("write_file"))
        assert not result.sufficient
        assert "generate_project" in result.reason
        assert result.required == ("generate_project",)

    def test_general_needs_any_invocation(self):
        assert not check_sufficiency(TaskCategory.GENERAL, _record()).sufficient
        assert check_sufficiency(TaskCategory.GENERAL, _record("read_file")).sufficient

    def test_failed_invocations_still_count(self):
        record = InvocationRecord()
        record.record("write_file", False)
        assert check_sufficiency(TaskCategory.CUSTOMIZE, record).sufficient


class TestForcedCapability:

    def test_scaffold_forces_generate_project(self):
        assert forced_capability(TaskCategory.SCAFFOLD, ["write_file", "generate_project"]) == \
            "generate_project"

    def test_not_held_means_no_forcing(self):
        assert forced_capability(TaskCategory.SCAFFOLD, ["write_file"]) is None

    def test_container_falls_back_to_write_file(self):
        assert forced_capability(TaskCategory.CONTAINER, ["write_file"]) == "write_file"

    def test_general_never_forces(self):
        assert forced_capability(TaskCategory.GENERAL, ["write_file", "read_file"]) is None


class TestDevSpecialty:

    def test_hint_wins(self):
        assert select_dev_specialty(_task("Navbar", agent_type="backend")) == DevSpecialty.BACKEND

    def test_frontend_keywords(self):
        task = _task("Create React component for the navbar")
        assert select_dev_specialty(task) == DevSpecialty.FRONTEND

    def test_backend_keywords(self):
        task = _task("Add API endpoint with express middleware")
        assert select_dev_specialty(task) == DevSpecialty.BACKEND

    def test_generalist_by_default(self):
        assert select_dev_specialty(_task("Write greeting module")) == DevSpecialty.GENERAL

    def test_single_keyword_is_not_enough(self):
        assert select_dev_specialty(_task("Polish the form copy")) == DevSpecialty.GENERAL

    def test_substrings_do_not_count(self):
        # "build" contains "ui", "guide" contains "ui" too
        assert select_dev_specialty(_task("Build the guide")) == DevSpecialty.GENERAL

    def test_file_extensions(self):
        task = _task("Update layout", files=["src/App.tsx"])
        assert select_dev_specialty(task) == DevSpecialty.FRONTEND


class TestGoalClassification:

    @pytest.mark.parametrize("goal,expected", [
        ("Build a todo app", GoalCategory.BUILD),
        ("Deploy the app locally", GoalCategory.DEPLOY),
        ("Check the health of the API", GoalCategory.MONITOR),
        ("The server is down, recover it", GoalCategory.REMEDIATE),
        ("The deployment crashed overnight", GoalCategory.REMEDIATE),
        ("Add a download button", GoalCategory.BUILD),
        ("Add a health endpoint to the express API", GoalCategory.BUILD),
        ("Fix the crash when the login form is submitted", GoalCategory.BUILD),
        ("Build a status page for the shop", GoalCategory.BUILD),
        ("Implement alert rules in the metrics module", GoalCategory.BUILD),
        ("The checkout service crashed, restart it", GoalCategory.REMEDIATE),
        ("Add a Dockerfile and deploy the API", GoalCategory.DEPLOY),
    ])
    def test_classify_goal(self, goal, expected):
        assert classify_goal(goal) == expected

    def test_build_request(self):
        assert is_build_request("Create a settings page")
        assert not is_build_request("Create something nice")
        assert not is_build_request("Check the api health")

    def test_deploy_intent(self):
        assert has_deploy_intent("Build a blog and make it live")
        assert has_deploy_intent("Deployed yesterday, deploy again")
        assert not has_deploy_intent("Build a blog")

    @pytest.mark.parametrize("goal,expected", [
        ("deploy locally", DeployTarget.LOCAL),
        ("deploy with docker", DeployTarget.LOCAL),
        ("deploy to azure container apps", DeployTarget.AZURE_CONTAINERS),
        ("deploy to azure app service", DeployTarget.AZURE_APPSERVICE),
        ("deploy it", DeployTarget.LOCAL),
    ])
    def test_deploy_target(self, goal, expected):
        assert detect_deploy_target(goal) == expected


class TestProjectHelpers:

    def test_project_name(self):
        assert extract_project_name('Create a todo app called "todo-app"') == "todo-app"
        assert extract_project_name("projectName=shop") == "shop"
        assert extract_project_name("Build something nice") == "my-project"

    def test_template_type(self):
        assert detect_template_type("A React dashboard") == "react"
        assert detect_template_type("An Express API") == "express"
        assert detect_template_type("React frontend with an Express backend") == "fullstack"
        assert detect_template_type("a notes app") == "fullstack"

    def test_extract_section(self):
        text = "BACKEND:\n- Add /todos route\n- Use sqlite\nFRONTEND:\n- Todo list page\n"
        assert extract_section(text, "BACKEND") == "- Add /todos route\n- Use sqlite"
        assert extract_section(text, "FRONTEND") == "- Todo list page"
        assert extract_section("no sections", "BACKEND") is None
