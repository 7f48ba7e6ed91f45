"""
Tests for ZIP archive expansion.
"""

import io
import zlib
import zipfile
import logging
from unittest.mock import patch

import pytest
from cloudsave.utils.archive import (
    expand_archive,
    is_supported_member,
    ArchiveLimitExceededError,
    InvalidArchiveError,
)
from conftest import create_test_zip


def test_supported_members_are_returned_in_order():
    """Supported members are decoded and returned in archive order."""
    zip_data = create_test_zip({
        'infra/main.tf': 'resource "aws_s3_bucket" "b" {}',
        'infra/stack.ts': "import * as cdk from 'aws-cdk-lib';",
        'template.yaml': 'Resources: {}',
    })

    members = expand_archive(zip_data)

    assert [name for name, _ in members] == ['infra/main.tf', 'infra/stack.ts', 'template.yaml']
    assert members[0][1] == 'resource "aws_s3_bucket" "b" {}'


def test_unsupported_members_are_skipped():
    """README, shell scripts and lock files are ignored."""
    zip_data = create_test_zip({
        'main.tf': 'resource "aws_s3_bucket" "b" {}',
        'README.md': '# Docs',
        'deploy.sh': 'terraform apply',
        'poetry.lock': '',
    })

    members = expand_archive(zip_data)

    assert [name for name, _ in members] == ['main.tf']


def test_directories_are_skipped():
    """Directory entries are never returned."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as zip_file:
        zip_file.writestr('infra/', '')
        zip_file.writestr('infra/main.tf', 'resource "aws_s3_bucket" "b" {}')

    members = expand_archive(buffer.getvalue())

    assert [name for name, _ in members] == ['infra/main.tf']


def test_image_members_have_no_content():
    """Image members are listed with empty content and never decoded."""
    zip_data = create_test_zip({
        'diagram.png': b'\x89PNG\r\n\x1a\n\x00\x00',
        'main.tf': 'resource "aws_s3_bucket" "b" {}',
    })

    members = expand_archive(zip_data)

    assert members[0] == ('diagram.png', '')


def test_non_utf8_member_is_skipped_with_warning(caplog):
    """A member that is not UTF-8 text is skipped and logged."""
    zip_data = create_test_zip({
        'binary.json': b'\xff\xfe\x00\x01',
        'main.tf': 'resource "aws_s3_bucket" "b" {}',
    })

    with caplog.at_level(logging.WARNING):
        members = expand_archive(zip_data)

    assert [name for name, _ in members] == ['main.tf']
    assert 'binary.json' in caplog.text


def test_entry_limit_is_enforced():
    """An archive with more entries than allowed is rejected."""
    zip_data = create_test_zip({f'file{i}.tf': '' for i in range(4)})

    with pytest.raises(ArchiveLimitExceededError, match='ZIP contains 4 files, exceeding the limit of 3.'):
        expand_archive(zip_data, max_files=3)


def test_entry_limit_counts_unsupported_members():
    """Every entry counts towards the limit, supported or not."""
    zip_data = create_test_zip({f'notes{i}.md': '' for i in range(3)})

    with pytest.raises(ArchiveLimitExceededError):
        expand_archive(zip_data, max_files=2)


def test_archive_at_limit_is_accepted():
    """An archive with exactly the allowed number of entries is accepted."""
    zip_data = create_test_zip({f'file{i}.tf': '' for i in range(3)})

    assert len(expand_archive(zip_data, max_files=3)) == 3


def test_invalid_zip_raises_error():
    """Bytes that are not a ZIP archive raise InvalidArchiveError."""
    with pytest.raises(InvalidArchiveError):
        expand_archive(b'not a zip file')


@pytest.mark.parametrize('error', [
    RuntimeError("File 'secret.tf' is encrypted, password required for extraction"),
    NotImplementedError("That compression method is not supported"),
    zlib.error("Error -3 while decompressing data: invalid stored block lengths"),
])
def test_unreadable_member_is_skipped_with_warning(error, caplog):
    """Encrypted, unsupported or corrupt members are skipped and the rest are returned."""
    zip_data = create_test_zip({
        'secret.tf': 'resource "aws_nat_gateway" "a" {}',
        'main.tf': 'resource "aws_s3_bucket" "b" {}',
    })
    original_read = zipfile.ZipFile.read

    def read(self, member, pwd=None):
        if getattr(member, 'filename', member) == 'secret.tf':
            raise error
        return original_read(self, member, pwd)

    with patch.object(zipfile.ZipFile, 'read', read), caplog.at_level(logging.WARNING):
        members = expand_archive(zip_data)

    assert [name for name, _ in members] == ['main.tf']
    assert 'secret.tf' in caplog.text


@pytest.mark.parametrize('name,expected', [
    ('main.tf', True),
    ('main.tf.json', True),
    ('Stack.TS', True),
    ('template.yml', True),
    ('diagram.jpg', True),
    ('README.md', False),
    ('Dockerfile', False),
])
def test_is_supported_member(name, expected):
    """Extensions are matched case-insensitively."""
    assert is_supported_member(name) is expected
