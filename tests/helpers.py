"""Sample sources and builders shared by the Cloud BPA tests."""

import io
import struct
import zipfile
from typing import Dict, List, Optional

from cloud_bpa.models import Finding, ScanResult


CFN_TEMPLATE = """\
AWSTemplateFormatVersion: "2010-09-09"
Description: Sample stack
Parameters:
  Env:
    Type: String
    Default: 2024-01-01
Resources:
  BucketA:
    Type: AWS::S3::Bucket
    Properties:
      BucketName: !Sub "${Env}-data"
      Tags:
        - Key: team
          Value: data
        - Key: cost-center
          Value: 42
  BucketB:
    Type: AWS::S3::Bucket
    DependsOn: BucketA
  Queue:
    Type: AWS::SQS::Queue
    DependsOn: [BucketA, BucketB]
    DeletionPolicy: Retain
    Condition: IsProd
    Properties:
      RedrivePolicy:
        deadLetterTargetArn: !GetAtt DeadLetters.Arn
      Tags:
        team: not-a-list
Outputs:
  BucketName:
    Value: !Ref BucketA
"""

TERRAFORM_SOURCE = """\
provider "aws" {
  region = "us-east-1"
}

variable "env" {
  default = "dev"
}

resource "aws_s3_bucket" "logs" {
  bucket = "my-logs"
  tags = {
    Environment = "prod"
    Team        = "platform"
  }
}

resource "aws_instance" "web" {
  ami           = "ami-123"
  instance_type = "t3.micro"
  count         = 2
  monitoring    = true
  depends_on    = [aws_s3_bucket.logs]
  subnet_id     = aws_subnet.main.id

  ebs_block_device {
    device_name = "/dev/sda1"
  }

  ebs_block_device {
    device_name = "/dev/sdb"
  }
}
"""

CDK_SOURCE = """\
import * as cdk from 'aws-cdk-lib';
import * as s3 from 'aws-cdk-lib/aws-s3';
import { Function as LambdaFunction, Runtime } from 'aws-cdk-lib/aws-lambda';
import { Helper } from './helper';

export class DataStack extends cdk.Stack {
  constructor(scope: cdk.App, id: string, props?: cdk.StackProps) {
    super(scope, id, props);

    const bucket = new s3.Bucket(this, 'DataBucket', {
      versioned: true,
      tags: { team: 'data' },
    });

    const processor = new LambdaFunction(this, 'Processor', {
      runtime: Runtime.NODEJS_18_X,
      memorySize: 512,
      environment: { BUCKET: bucket.bucketName },
    });

    new Helper(this, 'NotFromCdk');
  }
}
"""


def build_zip(entries: Dict[str, str]) -> bytes:
    """Create an in-memory ZIP archive from name -> text entries, in order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, text in entries.items():
            archive.writestr(name, text)
    return buffer.getvalue()


def _entry_offsets(data: bytes):
    """(local header, central header) offsets of the first entry; archives carry no comment."""
    return 0, struct.unpack_from("<I", data, len(data) - 22 + 16)[0]


def corrupt_first_entry(data: bytes) -> bytes:
    """Overwrite the first entry's compressed bytes with an invalid deflate block."""
    buf = bytearray(data)
    name_len, extra_len = struct.unpack_from("<HH", buf, 26)
    compressed = struct.unpack_from("<I", buf, 18)[0]
    start = 30 + name_len + extra_len
    buf[start:start + compressed] = b"\xff" * compressed
    return bytes(buf)


def mark_first_entry_encrypted(data: bytes) -> bytes:
    buf = bytearray(data)
    local, central = _entry_offsets(data)
    for flags_at in (local + 6, central + 8):
        struct.pack_into("<H", buf, flags_at, struct.unpack_from("<H", buf, flags_at)[0] | 0x1)
    return bytes(buf)


def declare_first_entry_size(data: bytes, size: int) -> bytes:
    """Rewrite the uncompressed size in both headers without touching the body."""
    buf = bytearray(data)
    local, central = _entry_offsets(data)
    struct.pack_into("<I", buf, local + 22, size)
    struct.pack_into("<I", buf, central + 24, size)
    return bytes(buf)


def make_scan(scan_id: str = "scan-1", account_id: str = "111122223333",
              by_service: Optional[Dict[str, int]] = None,
              by_region: Optional[Dict[str, int]] = None,
              findings: Optional[List[Finding]] = None,
              score: float = 80, security: int = 0, critical: int = 0,
              scan_date: str = "2024-01-01T00:00:00+00:00") -> ScanResult:
    by_service = by_service or {}
    return ScanResult(
        scan_id=scan_id,
        account_id=account_id,
        scan_date=scan_date,
        total_resources=sum(by_service.values()),
        resources_by_service=by_service,
        resources_by_region=by_region or {},
        compliance_score=score,
        security_findings=security,
        critical_findings=critical,
        findings=findings or [],
        status="COMPLETED",
    )


def finding(rule_id: Optional[str], severity: str, pillar: Optional[str] = "SECURITY", **extra) -> Finding:
    return Finding(
        id=f"f-{rule_id}",
        rule_id=rule_id,
        title=extra.pop("title", f"Rule {rule_id}"),
        description=extra.pop("description", f"Description of {rule_id}"),
        severity=severity,
        pillar=pillar,
        **extra,
    )
