"""
Database Seeder for the Course Storefront
Seeds demo courses, sections, units and dev-login users
"""

import logging

from models import db, Course, Section, Unit, User

logger = logging.getLogger('DatabaseSeeder')


COURSES = [
    {
        'code': 'software-design-pattern',
        'title': 'Software Design Patterns',
        'description': 'Learn design patterns by refactoring real code',
        'teacher_name': 'Water Ball',
        'price': 7599,
        'original_price': 9999,
        'order_index': 1,
        'sections': [
            {
                'title': 'Course Introduction & Preview',
                'units': [
                    {'title': 'Welcome', 'is_free_preview': True, 'xp_reward': 200, 'video_length': '05:12'},
                    {'title': 'How to study this course', 'is_free_preview': True, 'xp_reward': 200, 'video_length': '08:40'},
                ]
            },
            {
                'title': 'Chapter 1: Behavioural Patterns',
                'units': [
                    {'title': 'Strategy', 'xp_reward': 300, 'video_length': '21:03'},
                    {'title': 'State', 'xp_reward': 300, 'video_length': '18:27'},
                    {'title': 'Chapter 1 Gym', 'unit_type': 'google-form', 'xp_reward': 1000},
                ]
            },
            {
                'title': 'Chapter 2: Structural Patterns',
                'units': [
                    {'title': 'Composite', 'xp_reward': 300, 'video_length': '25:48'},
                    {'title': 'Decorator', 'xp_reward': 300, 'video_length': '19:55'},
                ]
            }
        ]
    },
    {
        'code': 'ai-x-bdd',
        'title': 'AI x BDD: Specification-Driven Development',
        'description': 'Automate development from executable specifications',
        'teacher_name': 'Water Ball',
        'price': 9999,
        'original_price': 15999,
        'order_index': 2,
        'sections': [
            {
                'title': 'Preconditions of Specification-Driven Development',
                'units': [
                    {'title': 'Why specifications first', 'is_free_preview': True, 'xp_reward': 200},
                    {'title': 'The specification spectrum', 'xp_reward': 500},
                ]
            }
        ]
    }
]

USERS = [
    {'external_id': 'seed-user-1', 'username': 'learner1', 'nickname': 'Learner One', 'email': 'learner1@example.com'},
    {'external_id': 'seed-user-2', 'username': 'learner2', 'nickname': 'Learner Two', 'email': 'learner2@example.com'},
]


class DatabaseSeeder:
    """Seeds the database with initial content data"""

    def __init__(self, courses=None, users=None):
        self.courses = courses if courses is not None else COURSES
        self.users = users if users is not None else USERS

    def seed_courses(self):
        created = 0
        for course_data in self.courses:
            if Course.query.filter_by(code=course_data['code']).first():
                continue

            fields = {k: v for k, v in course_data.items() if k != 'sections'}
            course = Course(**fields)
            db.session.add(course)
            db.session.flush()

            for s_idx, section_data in enumerate(course_data.get('sections', []), 1):
                section = Section(course_id=course.id, title=section_data['title'], order_index=s_idx)
                db.session.add(section)
                db.session.flush()

                for u_idx, unit_data in enumerate(section_data.get('units', []), 1):
                    db.session.add(Unit(
                        section_id=section.id,
                        course_code=course.code,
                        order_index=u_idx,
                        **unit_data
                    ))
            created += 1

        db.session.commit()
        logger.info(f"Seeded {created} courses")
        return created

    def seed_users(self):
        created = 0
        for user_data in self.users:
            if User.query.filter_by(external_id=user_data['external_id']).first():
                continue
            db.session.add(User(provider='dev', **user_data))
            created += 1

        db.session.commit()
        logger.info(f"Seeded {created} users")
        return created

    def run(self):
        return {
            'courses': self.seed_courses(),
            'users': self.seed_users()
        }
