"""Terraform AWS provider custom endpoint identifiers.

Every entry becomes one line in the generated provider's ``endpoints``
block unless the run is restricted to an explicit service list.
"""

from __future__ import annotations

# codestarnotifications is omitted: the provider rejects it as a custom endpoint
DEFAULT_SERVICES: tuple[str, ...] = (
    "accessanalyzer",
    "acm",
    "acmpca",
    "amplify",
    "apigateway",
    "applicationautoscaling",
    "applicationinsights",
    "appmesh",
    "appstream",
    "appsync",
    "athena",
    "autoscaling",
    "autoscalingplans",
    "backup",
    "batch",
    "budgets",
    "cloud9",
    "cloudformation",
    "cloudfront",
    "cloudhsm",
    "cloudsearch",
    "cloudtrail",
    "cloudwatch",
    "cloudwatchevents",
    "cloudwatchlogs",
    "codebuild",
    "codecommit",
    "codedeploy",
    "codepipeline",
    "cognitoidentity",
    "cognitoidp",
    "configservice",
    "cur",
    "dataexchange",
    "datapipeline",
    "datasync",
    "dax",
    "devicefarm",
    "directconnect",
    "dlm",
    "dms",
    "docdb",
    "ds",
    "dynamodb",
    "ec2",
    "ecr",
    "ecs",
    "efs",
    "eks",
    "elasticache",
    "elasticbeanstalk",
    "elastictranscoder",
    "elb",
    "emr",
    "es",
    "firehose",
    "fms",
    "forecast",
    "fsx",
    "gamelift",
    "glacier",
    "globalaccelerator",
    "glue",
    "guardduty",
    "greengrass",
    "iam",
    "imagebuilder",
    "inspector",
    "iot",
    "iotanalytics",
    "iotevents",
    "kafka",
    "kinesis",
    "kinesisanalytics",
    "kinesisvideo",
    "kms",
    "lakeformation",
    "lambda",
    "lexmodels",
    "licensemanager",
    "lightsail",
    "macie",
    "managedblockchain",
    "marketplacecatalog",
    "mediaconnect",
    "mediaconvert",
    "medialive",
    "mediapackage",
    "mediastore",
    "mediastoredata",
    "mq",
    "neptune",
    "opsworks",
    "organizations",
    "personalize",
    "pinpoint",
    "pricing",
    "qldb",
    "quicksight",
    "ram",
    "rds",
    "redshift",
    "resourcegroups",
    "route53",
    "route53resolver",
    "s3",
    "s3control",
    "sagemaker",
    "sdb",
    "secretsmanager",
    "securityhub",
    "serverlessrepo",
    "servicecatalog",
    "servicediscovery",
    "servicequotas",
    "ses",
    "shield",
    "sns",
    "sqs",
    "ssm",
    "stepfunctions",
    "storagegateway",
    "sts",
)
