"""
Unit tests for JavaParser: tree-sitter strategy and regex fallback.

Run: python -m pytest tests/unit/test_java_parser.py -v
"""
import sys
import tempfile
from pathlib import Path
from unittest import TestCase

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.parsers.java_parser import JavaParser

SERVICE_SOURCE = '''package com.example;

import java.util.List;

/**
 * Keeps users in memory.
 */
@Service
public class UserService extends BaseService implements Auditable, Closeable {
    private final List<User> users;

    public UserService(List<User> users) {
        this.users = users;
    }

    /** Finds a user. */
    public static User findUser(String name, int... ids) throws NotFoundException {
        return null;
    }

    enum Role { ADMIN, GUEST }
}

interface Auditable extends Serializable {
    void audit();
}
'''

GREETER_SOURCE = '''public class Greeter {
    public Greeter(String name) {
        this.name = name;
    }

    public String greet(String other) {
        if (other == null) {
            return "hi";
        }
        return "hello " + other;
    }
}
'''


CHILD_SOURCE = '''public class Child extends Base {
    public Child(String name) {
        super(name);
        doWork();
    }

    public void run() {
        doWork();
        helper.process(name);
        return;
    }
}
'''


def by_id_name(items):
    return {item.id.split('.', 1)[1].rsplit('_L', 1)[0]: item for item in items}


class JavaParserTestCase(TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)
        self.parser = JavaParser(str(self.root))

    def write(self, name: str, source: str) -> str:
        path = self.root / name
        path.write_text(source)
        return str(path)


class TestJavaParserAST(JavaParserTestCase):

    def test_class_metadata(self):
        items = by_id_name(self.parser.parse_file(self.write("UserService.java", SERVICE_SOURCE)))

        service = items['UserService']
        self.assertEqual(service.type, 'class')
        self.assertEqual(service.language, 'java')
        self.assertTrue(service.metadata['is_public'])
        self.assertEqual(service.metadata['annotations'], ['@Service'])
        self.assertEqual(service.metadata['superclass'], 'BaseService')
        self.assertEqual(service.metadata['interfaces'], ['Auditable', 'Closeable'])
        self.assertIn("Keeps users in memory.", service.metadata['javadoc'])

    def test_members_are_qualified_by_class(self):
        items = by_id_name(self.parser.parse_file(self.write("UserService.java", SERVICE_SOURCE)))

        constructor = items['UserService.UserService']
        self.assertEqual(constructor.type, 'constructor')
        self.assertIsNone(constructor.metadata['return_type'])

        find_user = items['UserService.findUser']
        self.assertEqual(find_user.type, 'method')
        self.assertEqual(find_user.metadata['class_name'], 'UserService')
        self.assertTrue(find_user.metadata['is_static'])
        self.assertEqual(find_user.metadata['return_type'], 'User')
        self.assertEqual(find_user.metadata['exceptions'], ['NotFoundException'])
        self.assertEqual(find_user.metadata['javadoc'], "/** Finds a user. */")
        self.assertEqual(
            [(p['name'], p['varargs']) for p in find_user.metadata['parameters']],
            [('name', False), ('ids', True)],
        )

    def test_nested_enum_and_interface(self):
        items = by_id_name(self.parser.parse_file(self.write("UserService.java", SERVICE_SOURCE)))

        role = items['Role']
        self.assertEqual(role.type, 'enum')
        self.assertEqual(role.metadata['enum_constants'], ['ADMIN', 'GUEST'])
        self.assertEqual(role.metadata['class_name'], 'UserService')

        auditable = items['Auditable']
        self.assertEqual(auditable.type, 'interface')
        self.assertEqual(auditable.metadata['interfaces'], ['Serializable'])
        self.assertIn('Auditable.audit', items)


class TestJavaParserRegex(JavaParserTestCase):

    def setUp(self):
        super().setUp()
        self.parser._backends['default'] = None

    def test_regex_fallback_skips_control_flow(self):
        items = self.parser.parse_file(self.write("Greeter.java", GREETER_SOURCE))

        self.assertEqual(
            [(item.type, item.id) for item in items],
            [
                ('class', 'Greeter.Greeter_L1'),
                ('constructor', 'Greeter.Greeter.Greeter_L2'),
                ('method', 'Greeter.Greeter.greet_L6'),
            ],
        )
        self.assertEqual(items[0].metadata['end_line'], 12)
        self.assertEqual(items[2].metadata['end_line'], 11)
        self.assertEqual(items[2].metadata['return_type'], 'String')
        self.assertEqual(items[2].metadata['class_name'], 'Greeter')

    def test_bare_calls_in_bodies_are_not_members(self):
        items = self.parser.parse_file(self.write("Child.java", CHILD_SOURCE))

        self.assertEqual(
            [(item.type, item.id) for item in items],
            [
                ('class', 'Child.Child_L1'),
                ('constructor', 'Child.Child.Child_L2'),
                ('method', 'Child.Child.run_L7'),
            ],
        )
        self.assertEqual(items[2].metadata['return_type'], 'void')
        self.assertEqual(items[2].metadata['end_line'], 11)
