"""Checkout, build and deploy pipeline for the site."""

from aws_cdk import SecretValue, Stack
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_codepipeline_actions as actions
from aws_cdk import aws_iam as iam
from constructs import Construct

from ..config import PipelineConfig
from .storage import OriginBucket


def deploy_commands(*, prune: bool) -> list[str]:
  """Shell commands that sync the build artifact and invalidate the CDN."""
  sync = 'aws s3 sync . "s3://${BUCKET_NAME}" --no-progress'
  if prune:
    sync += " --delete"
  return [
    sync,
    'aws cloudfront create-invalidation --distribution-id "${DISTRIBUTION_ID}" --paths "/*"',
  ]


class DeliveryPipeline(Construct):
  """CodePipeline with checkout, build and deploy stages.

  Stages:
  - checkout: GitHub source on webhook, token from Secrets Manager
  - build: CodeBuild using the buildspec from the source tree
  - deploy: CodeBuild that syncs the build output to the bucket and
    invalidates the distribution
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    pipeline_config: PipelineConfig,
    origin: OriginBucket,
    distribution: cloudfront.IDistribution,
    prune: bool = False,
    resource_prefix: str = "",
  ) -> None:
    super().__init__(scope, id)

    prefix = resource_prefix or Stack.of(self).stack_name
    self.source_output = codepipeline.Artifact("source")
    self.build_output = codepipeline.Artifact("build")

    self.build_project = codebuild.PipelineProject(
      self,
      "BuildProject",
      project_name=f"{prefix}-build",
      build_spec=codebuild.BuildSpec.from_source_filename(pipeline_config.build_spec_path),
      environment=codebuild.BuildEnvironment(
        build_image=pipeline_config.linux_build_image,
      ),
    )

    self.deploy_project = codebuild.PipelineProject(
      self,
      "DeployProject",
      project_name=f"{prefix}-deploy",
      build_spec=codebuild.BuildSpec.from_object(
        {
          "version": "0.2",
          "phases": {"build": {"commands": deploy_commands(prune=prune)}},
        }
      ),
      environment=codebuild.BuildEnvironment(
        build_image=pipeline_config.linux_build_image,
      ),
      environment_variables={
        "BUCKET_NAME": codebuild.BuildEnvironmentVariable(value=origin.bucket.bucket_name),
        "DISTRIBUTION_ID": codebuild.BuildEnvironmentVariable(
          value=distribution.distribution_id
        ),
      },
    )

    # The deploy role is the only writer of the origin bucket
    origin.grant_deploy(self.deploy_project)
    self.deploy_project.add_to_role_policy(
      iam.PolicyStatement(
        actions=["cloudfront:CreateInvalidation"],
        resources=[
          Stack.of(self).format_arn(
            service="cloudfront",
            region="",
            resource="distribution",
            resource_name=distribution.distribution_id,
          )
        ],
      )
    )

    self.pipeline = codepipeline.Pipeline(
      self,
      "Pipeline",
      pipeline_name=f"{prefix}-pipeline",
      cross_account_keys=False,
      restart_execution_on_update=True,
    )

    self.pipeline.add_stage(
      stage_name="checkout",
      actions=[
        actions.GitHubSourceAction(
          action_name="checkout-webapp",
          owner=pipeline_config.repo_owner,
          repo=pipeline_config.repo_name,
          branch=pipeline_config.branch,
          oauth_token=SecretValue.secrets_manager(pipeline_config.oauth_secret_name),
          output=self.source_output,
          trigger=actions.GitHubTrigger.WEBHOOK,
        )
      ],
    )

    self.pipeline.add_stage(
      stage_name="build",
      actions=[
        actions.CodeBuildAction(
          action_name="build-webapp",
          project=self.build_project,
          input=self.source_output,
          outputs=[self.build_output],
        )
      ],
    )

    self.pipeline.add_stage(
      stage_name="deploy",
      actions=[
        actions.CodeBuildAction(
          action_name="deploy-webapp",
          project=self.deploy_project,
          input=self.build_output,
        )
      ],
    )
