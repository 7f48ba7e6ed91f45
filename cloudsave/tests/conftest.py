"""
Shared pytest fixtures for CloudSave tests.
"""

import sys
import os
import io
import zipfile
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Set minimal environment variables for testing
os.environ.setdefault('CLOUDSAVE_MAX_FILES_IN_ZIP', '50')
os.environ.setdefault('CLOUDSAVE_LOG_LEVEL', 'INFO')

import pytest
from fastapi.testclient import TestClient
from cloudsave.main import app
from cloudsave.domain.finding_models import Finding


def create_test_zip(files):
    """Helper to create an in-memory ZIP archive from {path: content}."""
    zip_buffer = io.BytesIO()
    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
        for path, content in files.items():
            zip_file.writestr(path, content)
    return zip_buffer.getvalue()


def make_finding(service='Lambda', severity='high', category='overprovisioned',
                 current_cost=100, optimized_cost=50, name='resource', rule='rule-01'):
    """Helper to build a Finding with only the fields a test cares about."""
    return Finding(
        id=f'{rule}-{name}',
        service=service,
        issue='Test issue',
        description='Test description',
        severity=severity,
        category=category,
        current_config='current',
        recommended_config='recommended',
        current_cost=current_cost,
        optimized_cost=optimized_cost,
        saving=current_cost - optimized_cost,
        saving_percent=0,
        resource_name=name,
    )


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def cdk_stack_ts():
    """TypeScript CDK stack with several cost anti-patterns."""
    return """
import * as cdk from 'aws-cdk-lib';
import * as lambda from 'aws-cdk-lib/aws-lambda';
import * as rds from 'aws-cdk-lib/aws-rds';
import * as ecs from 'aws-cdk-lib/aws-ecs';
import * as ec2 from 'aws-cdk-lib/aws-ec2';
import * as apigateway from 'aws-cdk-lib/aws-apigateway';
import * as s3 from 'aws-cdk-lib/aws-s3';
import * as elbv2 from 'aws-cdk-lib/aws-elasticloadbalancingv2';
import { Construct } from 'constructs';

export class OrdersAppStack extends cdk.Stack {
  constructor(scope: Construct, id: string, props?: cdk.StackProps) {
    super(scope, id, props);

    // Order processing
    const processOrders = new lambda.Function(this, 'ProcessOrders', {
      runtime: lambda.Runtime.NODEJS_20_X,
      handler: 'index.handler',
      code: lambda.Code.fromAsset('src/functions/process-orders'),
      memorySize: 4096,
      timeout: cdk.Duration.seconds(900),
    });

    const healthCheck = new lambda.Function(this, 'HealthCheck', {
      runtime: lambda.Runtime.NODEJS_18_X,
      handler: 'index.handler',
      code: lambda.Code.fromAsset('src/functions/health'),
      memorySize: 256,
      architecture: lambda.Architecture.ARM_64,
    });

    const vpc = new ec2.Vpc(this, 'AppVpc', {
      natGateways: 3,
    });

    const devDatabase = new rds.DatabaseInstance(this, 'devDatabase', {
      engine: rds.DatabaseInstanceEngine.mysql({
        version: rds.MysqlEngineVersion.VER_8_0,
      }),
      instanceType: ec2.InstanceType.of(
        ec2.InstanceClass.R5,
        ec2.InstanceSize.XLARGE
      ),
      multiAz: true,
      vpc,
      allocatedStorage: 500,
    });

    const cluster = new ecs.Cluster(this, 'AppCluster', { vpc });

    const taskDefinition = new ecs.FargateTaskDefinition(this, 'AppTaskDef', {
      cpu: 4096,
      memoryLimitMiB: 16384,
    });

    const appService = new ecs.FargateService(this, 'AppService', {
      cluster,
      taskDefinition,
      desiredCount: 5,
    });

    const nlb = new elbv2.NetworkLoadBalancer(this, 'AppNLB', { vpc, internetFacing: false });
    const vpcLink = new apigateway.VpcLink(this, 'AppVpcLink', { targets: [nlb] });

    const ordersApi = new apigateway.RestApi(this, 'OrdersApi', {
      restApiName: 'orders-api',
      defaultIntegration: new apigateway.HttpIntegration('http://internal.example.com', {
        httpMethod: 'ANY',
        options: { vpcLink },
      }),
    });

    const logsBucket = new s3.Bucket(this, 'LogsBucket', {
      versioned: true,
      blockPublicAccess: s3.BlockPublicAccess.BLOCK_ALL,
    });
  }
}
"""


@pytest.fixture
def terraform_main():
    """Terraform configuration with several cost anti-patterns."""
    return """
provider "aws" {
  region = "us-east-1"
}

resource "aws_db_instance" "orders" {
  identifier     = "orders-db"
  engine         = "postgres"
  instance_class = "db.t3.medium"
  multi_az       = true
}

resource "aws_nat_gateway" "public" {
  count         = 2
  allocation_id = aws_eip.nat[count.index].id
  subnet_id     = aws_subnet.public[count.index].id
}

resource "aws_s3_bucket" "uploads" {
  bucket = "acme-uploads"
}
"""


@pytest.fixture
def ecs_task_json():
    """Over-allocated Fargate task definition."""
    return """{
  "family": "checkout",
  "requiresCompatibilities": ["FARGATE"],
  "networkMode": "awsvpc",
  "cpu": "4096",
  "memory": "16384",
  "containerDefinitions": [
    {"name": "checkout", "image": "acme/checkout:latest", "essential": true}
  ]
}"""
